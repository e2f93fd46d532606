"""Route tool invocations from live calls.

A tool defined on the bot with its own URL is forwarded there; anything
else runs through ``BuiltinTools``. Tool calls can arrive before the call
was ever recorded locally (inbound calls), in which case the call is
recovered from the platform first.
"""

import json
from typing import Any, Optional
from uuid import UUID

import httpx
import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from voicedesk.config import Settings
from voicedesk.database.models import Bot, Call, CallStatus, User, utcnow
from voicedesk.errors import CredentialMissing, EntityNotFound, RemoteApiError
from voicedesk.retell.client import RetellClient
from voicedesk.retell.credentials import CredentialResolver
from voicedesk.retell.schemas import RemoteCall
from voicedesk.tools.builtin import BuiltinTools
from voicedesk.tools.definitions import find_tool, tool_url
from voicedesk.webhooks.lifecycle import ms_to_datetime
from voicedesk.webhooks.schemas import ToolCallRequest, ToolCallResponse

logger = structlog.get_logger()


def parse_arguments(arguments: Any) -> dict[str, Any]:
    """Arguments arrive as an object or a JSON-encoded string."""
    if isinstance(arguments, dict):
        return arguments
    if isinstance(arguments, str) and arguments.strip():
        try:
            decoded = json.loads(arguments)
        except json.JSONDecodeError:
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}


def encode_result(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result, default=str)


class ToolCallDispatcher:
    def __init__(
        self,
        db: AsyncSession,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.db = db
        self.settings = settings
        self.transport = transport
        self.logger = logger.bind(service="tool_dispatcher")

    async def dispatch(self, request: ToolCallRequest) -> ToolCallResponse:
        """Execute ``request`` and wrap the outcome in the response envelope.

        Raises ``EntityNotFound`` when the call can be neither found nor
        recovered.
        """
        call = await self._find_call(request.call_id)
        if call is None:
            call = await self.recover_call(request)
        if call is None:
            raise EntityNotFound("Call", request.call_id)

        bot = await self.db.get(Bot, call.bot_id)
        definition = find_tool(bot.custom_tools if bot else None, request.tool_name)
        if definition is None:
            self.logger.warning("Unknown tool", tool=request.tool_name, call_id=str(call.id))
            return ToolCallResponse(
                result=f"Error: Tool '{request.tool_name}' not found",
                tool_call_id=request.tool_call_id,
                error=True,
            )

        arguments = parse_arguments(request.arguments)
        url = tool_url(definition)
        if url:
            result = await self.forward(url, request, arguments, call)
        else:
            result = await BuiltinTools(self.db, self.settings, call).execute(request.tool_name, arguments)

        return ToolCallResponse(result=encode_result(result), tool_call_id=request.tool_call_id)

    async def _find_call(self, remote_call_id: str) -> Optional[Call]:
        result = await self.db.execute(select(Call).where(Call.retell_call_id == remote_call_id))
        return result.scalar_one_or_none()

    # =====================
    # Recovery
    # =====================

    async def _recovery_client(self, request: ToolCallRequest) -> Optional[RetellClient]:
        """Credential for fetching an unknown call.

        An ``agent_id`` hint on the request selects the owning organization's
        key; otherwise only the fallback key can be used.
        """
        agent_id = (request.model_extra or {}).get("agent_id")
        if agent_id:
            result = await self.db.execute(select(Bot.organization_id).where(Bot.retell_agent_id == agent_id))
            organization_id = result.scalar_one_or_none()
            if organization_id is not None:
                try:
                    return await CredentialResolver(self.db, self.settings).client_for(organization_id)
                except CredentialMissing:
                    return None

        if self.settings.retell_api_key:
            return RetellClient(
                api_key=self.settings.retell_api_key,
                base_url=self.settings.retell_base_url,
                timeout=self.settings.retell_timeout_seconds,
            )
        return None

    async def recover_call(self, request: ToolCallRequest) -> Optional[Call]:
        """Create the local record of a call first seen through a tool call."""
        client = await self._recovery_client(request)
        if client is None:
            self.logger.warning("Call recovery impossible, no credential", retell_call_id=request.call_id)
            return None

        try:
            remote = await client.get_call(request.call_id)
        except RemoteApiError as e:
            self.logger.warning(
                "Call recovery failed",
                retell_call_id=request.call_id,
                remote_status=e.remote_status,
            )
            return None

        bot = await self._bot_for(remote)
        if bot is None:
            return None

        result = await self.db.execute(
            select(User)
            .where(User.organization_id == bot.organization_id)
            .order_by(User.created_at, User.email)
            .limit(1)
        )
        user = result.scalars().first()
        if user is None:
            self.logger.warning("Call recovery failed, organization has no users", bot_id=str(bot.id))
            return None

        call = Call(
            organization_id=bot.organization_id,
            bot_id=bot.id,
            initiated_by_id=user.id,
            retell_call_id=request.call_id,
            from_number=remote.from_number,
            to_number=remote.to_number,
            status=CallStatus.IN_PROGRESS,
            started_at=ms_to_datetime(remote.start_timestamp) or utcnow(),
        )
        self.db.add(call)
        try:
            await self.db.commit()
        except IntegrityError:
            # Another tool call for the same call recovered it first
            await self.db.rollback()
            return await self._find_call(request.call_id)

        self.logger.info(
            "Call recovered",
            call_id=str(call.id),
            retell_call_id=call.retell_call_id,
            organization_id=str(call.organization_id),
        )
        return call

    async def _bot_for(self, remote: RemoteCall) -> Optional[Bot]:
        if not remote.agent_id:
            self.logger.warning("Recovered call has no agent", retell_call_id=remote.call_id)
            return None

        result = await self.db.execute(select(Bot).where(Bot.retell_agent_id == remote.agent_id))
        bot = result.scalar_one_or_none()
        if bot is None:
            self.logger.warning("Recovered call agent not linked", agent_id=remote.agent_id)
            return None

        claimed = remote.organization_id
        if claimed:
            try:
                mismatch = UUID(claimed) != bot.organization_id
            except ValueError:
                mismatch = True
            if mismatch:
                self.logger.warning(
                    "Recovered call metadata names another organization",
                    agent_id=remote.agent_id,
                    organization_id=claimed,
                )
                return None
        return bot

    # =====================
    # Forwarding
    # =====================

    async def forward(
        self, url: str, request: ToolCallRequest, arguments: dict[str, Any], call: Call
    ) -> Any:
        """POST the invocation to a tool's own endpoint and relay its answer."""
        body = {
            "call_id": request.call_id,
            "tool_call_id": request.tool_call_id,
            "tool_name": request.tool_name,
            "arguments": arguments,
            "organization_id": str(call.organization_id),
        }
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.tool_forward_timeout_seconds, transport=self.transport
            ) as client:
                response = await client.post(url, json=body)
        except httpx.HTTPError as e:
            self.logger.warning("Tool forward failed", tool=request.tool_name, error=str(e))
            return {"error": True, "message": f"Tool execution failed: {e}"}

        if response.status_code >= 400:
            self.logger.warning("Tool endpoint error", tool=request.tool_name, status_code=response.status_code)
            return {
                "error": True,
                "message": f"Tool execution failed: endpoint returned {response.status_code}",
            }

        try:
            return response.json()
        except ValueError:
            return response.text
