"""Function-calling definitions for the built-in tools.

Admins copy these into a bot's ``custom_tools`` list. A definition that
carries ``function.url`` is forwarded to that URL instead of being run
locally.
"""

from typing import Any, Optional


def _tool(name: str, description: str, properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


CHECK_AVAILABILITY_TOOL = _tool(
    "check_availability",
    "Check room availability for a given date range and number of guests. Use this whenever "
    "a customer asks about room availability, prices, or vacancy. Always ask for check-in and "
    "check-out dates if not provided.",
    {
        "checkIn": {
            "type": "string",
            "description": "Check-in date in YYYY-MM-DD format. If user says 'tomorrow', "
            "calculate the date based on current date.",
        },
        "checkOut": {"type": "string", "description": "Check-out date in YYYY-MM-DD format."},
        "guests": {
            "type": "number",
            "description": "Number of guests (adults + children). Default to 2 if not specified.",
        },
        "roomType": {
            "type": "string",
            "description": "Optional specific room type name (e.g. 'Deluxe', 'Suite').",
        },
    },
    ["checkIn", "checkOut", "guests"],
)

CREATE_ORDER_TOOL = _tool(
    "create_order",
    "Place a food order for the caller once the items and name are confirmed.",
    {
        "customer_name": {"type": "string", "description": "Name the order is under."},
        "customer_phone": {"type": "string", "description": "Callback phone number."},
        "items": {"type": "string", "description": "Ordered items with quantities."},
        "total_amount": {"type": "number", "description": "Order total, if quoted."},
        "delivery_address": {"type": "string", "description": "Delivery address, if delivered."},
        "notes": {"type": "string", "description": "Special instructions."},
    },
    ["customer_name", "items"],
)

CHECK_ORDER_STATUS_TOOL = _tool(
    "check_order_status",
    "Look up the status of an order by its confirmation number.",
    {
        "order_id": {
            "type": "string",
            "description": "Full order id or the short confirmation number read to the caller.",
        },
    },
    ["order_id"],
)

CREATE_RESERVATION_TOOL = _tool(
    "create_reservation",
    "Book a room once dates, guest count and guest name are confirmed.",
    {
        "guest_name": {"type": "string", "description": "Name of the main guest."},
        "guest_phone": {"type": "string", "description": "Guest phone number."},
        "guest_email": {"type": "string", "description": "Guest email address."},
        "check_in": {"type": "string", "description": "Check-in date in YYYY-MM-DD format."},
        "check_out": {"type": "string", "description": "Check-out date in YYYY-MM-DD format."},
        "room_type": {"type": "string", "description": "Room type name."},
        "number_of_guests": {"type": "number", "description": "Number of guests."},
        "special_requests": {"type": "string", "description": "Special requests."},
    },
    ["guest_name", "check_in", "check_out"],
)

CHECK_RESERVATION_STATUS_TOOL = _tool(
    "check_reservation_status",
    "Look up the status of a reservation by its confirmation number.",
    {
        "reservation_id": {
            "type": "string",
            "description": "Full reservation id or the short confirmation number.",
        },
    },
    ["reservation_id"],
)

GET_CALL_INFO_TOOL = _tool(
    "get_call_info",
    "Get details about the current call.",
    {},
    [],
)

BUILTIN_TOOLS: dict[str, dict[str, Any]] = {
    tool["function"]["name"]: tool
    for tool in (
        CHECK_AVAILABILITY_TOOL,
        CREATE_ORDER_TOOL,
        CHECK_ORDER_STATUS_TOOL,
        CREATE_RESERVATION_TOOL,
        CHECK_RESERVATION_STATUS_TOOL,
        GET_CALL_INFO_TOOL,
    )
}


def tool_name(definition: dict[str, Any]) -> Optional[str]:
    """Name of an OpenAI-style definition, or a flat ``{"name": ...}`` one."""
    function = definition.get("function")
    if isinstance(function, dict):
        return function.get("name")
    return definition.get("name")


def tool_url(definition: dict[str, Any]) -> Optional[str]:
    function = definition.get("function")
    if isinstance(function, dict) and function.get("url"):
        return function["url"]
    return definition.get("url")


def find_tool(tools: Optional[list[dict[str, Any]]], name: str) -> Optional[dict[str, Any]]:
    """First definition in ``tools`` named ``name``."""
    for definition in tools or []:
        if isinstance(definition, dict) and tool_name(definition) == name:
            return definition
    return None


def to_general_tool(definition: dict[str, Any], default_url: str) -> dict[str, Any]:
    """Convert a stored definition into the platform's custom tool shape."""
    function = definition.get("function") if isinstance(definition.get("function"), dict) else definition
    return {
        "type": "custom",
        "name": function.get("name"),
        "description": function.get("description", ""),
        "parameters": function.get("parameters", {"type": "object", "properties": {}}),
        "url": tool_url(definition) or default_url,
        "speak_during_execution": False,
        "speak_after_execution": True,
    }
