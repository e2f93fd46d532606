"""HTTP gateway to the voice platform API."""

from typing import Any, Optional, Type, TypeVar, Union

import httpx
import structlog
from pydantic import BaseModel, ValidationError as PydanticValidationError

from voicedesk.errors import RemoteApiError
from voicedesk.retell.schemas import (
    MalformedEntry,
    RemoteAgent,
    RemoteCall,
    RemoteKnowledgeBase,
    RemoteLlm,
    RemotePhoneNumber,
)

logger = structlog.get_logger()

ModelT = TypeVar("ModelT", bound=BaseModel)

DEFAULT_BASE_URL = "https://api.retellai.com"


class RetellClient:
    """Thin async client for the voice platform REST API.

    One instance is bound to one API key. The client never retries; a
    non-2xx response or transport failure raises ``RemoteApiError`` and the
    caller decides what to do.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._api_key = api_key
        self._transport = transport
        self.logger = logger.bind(service="retell_client")

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def call(self, method: str, path: str, body: Optional[Any] = None) -> Any:
        """Send one request and return the parsed JSON body.

        Empty 2xx bodies decode to ``{}``.
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(
                    method.upper(),
                    url,
                    headers=self._headers(),
                    json=body,
                )
        except httpx.HTTPError as e:
            self.logger.error("Voice platform request failed", method=method, path=path, error=str(e))
            raise RemoteApiError(0, str(e), path=path) from e

        if response.status_code < 200 or response.status_code >= 300:
            self.logger.warning(
                "Voice platform returned error",
                method=method,
                path=path,
                status=response.status_code,
            )
            raise RemoteApiError(response.status_code, response.text, path=path)

        if not response.content or not response.content.strip():
            return {}

        try:
            return response.json()
        except ValueError as e:
            raise RemoteApiError(response.status_code, response.text, path=path) from e

    # =====================
    # Decoding helpers
    # =====================

    @staticmethod
    def _decode_one(model: Type[ModelT], data: Any, path: str) -> ModelT:
        if not isinstance(data, dict):
            raise RemoteApiError(200, repr(data)[:1000], path=path)
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            raise RemoteApiError(200, str(e), path=path) from e

    @staticmethod
    def _decode_list(model: Type[ModelT], data: Any, path: str) -> list[Union[ModelT, MalformedEntry]]:
        """Decode a list payload entry by entry.

        Only a non-list body is an error. Entries that fail to decode come
        back as ``MalformedEntry`` so callers can skip them individually.
        """
        if not isinstance(data, list):
            raise RemoteApiError(200, repr(data)[:1000], path=path)
        items: list[Union[ModelT, MalformedEntry]] = []
        for raw in data:
            if not isinstance(raw, dict):
                items.append(MalformedEntry(raw=raw, error=f"expected an object, got {type(raw).__name__}"))
                continue
            try:
                items.append(model.model_validate(raw))
            except PydanticValidationError as e:
                fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in e.errors())
                items.append(MalformedEntry(raw=raw, error=f"invalid fields: {fields}"))
        return items

    # =====================
    # Agents
    # =====================

    async def list_agents(self) -> list[Union[RemoteAgent, MalformedEntry]]:
        path = "/list-agents"
        return self._decode_list(RemoteAgent, await self.call("GET", path), path)

    async def get_agent(self, agent_id: str) -> RemoteAgent:
        path = f"/get-agent/{agent_id}"
        return self._decode_one(RemoteAgent, await self.call("GET", path), path)

    async def create_agent(self, payload: dict[str, Any]) -> RemoteAgent:
        path = "/create-agent"
        return self._decode_one(RemoteAgent, await self.call("POST", path, payload), path)

    async def update_agent(self, agent_id: str, payload: dict[str, Any]) -> RemoteAgent:
        path = f"/update-agent/{agent_id}"
        return self._decode_one(RemoteAgent, await self.call("PATCH", path, payload), path)

    async def delete_agent(self, agent_id: str) -> None:
        await self.call("DELETE", f"/delete-agent/{agent_id}")

    # =====================
    # LLM configurations
    # =====================

    async def get_llm(self, llm_id: str) -> RemoteLlm:
        path = f"/get-retell-llm/{llm_id}"
        return self._decode_one(RemoteLlm, await self.call("GET", path), path)

    async def create_llm(self, payload: dict[str, Any]) -> RemoteLlm:
        path = "/create-retell-llm"
        return self._decode_one(RemoteLlm, await self.call("POST", path, payload), path)

    async def update_llm(self, llm_id: str, payload: dict[str, Any]) -> RemoteLlm:
        path = f"/update-retell-llm/{llm_id}"
        return self._decode_one(RemoteLlm, await self.call("PATCH", path, payload), path)

    async def delete_llm(self, llm_id: str) -> None:
        await self.call("DELETE", f"/delete-retell-llm/{llm_id}")

    # =====================
    # Phone numbers
    # =====================

    async def list_phone_numbers(self) -> list[Union[RemotePhoneNumber, MalformedEntry]]:
        path = "/list-phone-numbers"
        return self._decode_list(RemotePhoneNumber, await self.call("GET", path), path)

    async def create_phone_number(self, payload: dict[str, Any]) -> RemotePhoneNumber:
        path = "/create-phone-number"
        return self._decode_one(RemotePhoneNumber, await self.call("POST", path, payload), path)

    async def import_phone_number(self, payload: dict[str, Any]) -> RemotePhoneNumber:
        path = "/import-phone-number"
        return self._decode_one(RemotePhoneNumber, await self.call("POST", path, payload), path)

    async def update_phone_number(self, number: str, payload: dict[str, Any]) -> RemotePhoneNumber:
        path = f"/update-phone-number/{number}"
        return self._decode_one(RemotePhoneNumber, await self.call("PATCH", path, payload), path)

    async def delete_phone_number(self, number: str) -> None:
        await self.call("DELETE", f"/delete-phone-number/{number}")

    # =====================
    # Knowledge bases
    # =====================

    async def create_knowledge_base(self, payload: dict[str, Any]) -> RemoteKnowledgeBase:
        path = "/create-knowledge-base"
        return self._decode_one(RemoteKnowledgeBase, await self.call("POST", path, payload), path)

    async def update_knowledge_base(
        self, knowledge_base_id: str, payload: dict[str, Any]
    ) -> RemoteKnowledgeBase:
        path = f"/knowledge-base/{knowledge_base_id}"
        return self._decode_one(RemoteKnowledgeBase, await self.call("PATCH", path, payload), path)

    async def delete_knowledge_base(self, knowledge_base_id: str) -> None:
        await self.call("DELETE", f"/knowledge-base/{knowledge_base_id}")

    # =====================
    # Calls
    # =====================

    async def list_calls(self, limit: int = 10) -> list[Union[RemoteCall, MalformedEntry]]:
        path = "/v2/list-calls"
        return self._decode_list(RemoteCall, await self.call("POST", path, {"limit": limit}), path)

    async def get_call(self, call_id: str) -> RemoteCall:
        path = f"/v2/get-call/{call_id}"
        return self._decode_one(RemoteCall, await self.call("GET", path), path)

    async def create_phone_call(self, payload: dict[str, Any]) -> RemoteCall:
        path = "/v2/create-phone-call"
        return self._decode_one(RemoteCall, await self.call("POST", path, payload), path)
