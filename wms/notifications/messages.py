"""
Inbound wire messages.

Every frame is a JSON object with a ``type`` discriminator. Known types
are validated into typed models; unknown types parse to ``None`` so newer
servers can add message kinds without breaking older clients.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from wms.core.exceptions import MessageParseError
from wms.notifications.models import NotificationKind


class InboundMessage(BaseModel):
    """Base for all server-pushed frames."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str


class PongMessage(InboundMessage):
    type: Literal["pong"]
    # Echoed back untouched; only the frame's arrival matters
    timestamp: Any = None


class PingMessage(InboundMessage):
    """Server liveness check; answered with a pong."""

    type: Literal["ping"]
    timestamp: Any = None


class ConnectionMessage(InboundMessage):
    """Greeting sent by the server once the socket is accepted."""

    type: Literal["connection"]
    message: Optional[str] = None
    timestamp: Any = None


class NotificationPayload(BaseModel):
    """A fully formed notification pushed by the server."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[str] = None
    title: str
    message: str
    kind: NotificationKind = Field(default=NotificationKind.INFO, alias="type")
    timestamp: Optional[datetime] = None
    read: bool = False
    order_id: Optional[Union[int, str]] = Field(default=None, alias="orderId")
    order_number: Optional[str] = Field(default=None, alias="orderNumber")


class NotificationMessage(InboundMessage):
    type: Literal["notification"]
    notification: NotificationPayload


class DocumentUploadedMessage(InboundMessage):
    type: Literal["documentUploaded"]
    order_id: Union[int, str] = Field(alias="orderId")
    order_number: str = Field(alias="orderNumber")
    document_type: Optional[str] = Field(default=None, alias="documentType")


class UnshippedItemsAuthorizedMessage(InboundMessage):
    type: Literal["unshippedItemsAuthorized"]
    item_count: int = Field(alias="itemCount")
    authorized_by_id: Optional[Union[int, str]] = Field(default=None, alias="authorizedById")
    authorized_by_role: Optional[str] = Field(default=None, alias="authorizedByRole")


class OrderStatusChangeMessage(InboundMessage):
    type: Literal["orderStatusChange"]
    order_id: Union[int, str] = Field(alias="orderId")
    order_number: str = Field(alias="orderNumber")
    previous_status: Optional[str] = Field(default=None, alias="previousStatus")
    new_status: str = Field(alias="newStatus")


MESSAGE_TYPES: Dict[str, Type[InboundMessage]] = {
    "pong": PongMessage,
    "ping": PingMessage,
    "connection": ConnectionMessage,
    "notification": NotificationMessage,
    "documentUploaded": DocumentUploadedMessage,
    "unshippedItemsAuthorized": UnshippedItemsAuthorizedMessage,
    "orderStatusChange": OrderStatusChangeMessage,
}


def parse_message(raw: Union[str, bytes]) -> Optional[InboundMessage]:
    """
    Parse one inbound frame.

    Returns:
        The typed message, or None for an unknown ``type``

    Raises:
        MessageParseError: not JSON, not an object, no ``type``, or a known
            type whose fields do not validate
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MessageParseError("Frame is not valid UTF-8", cause=e) from e

    try:
        data: Any = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MessageParseError("Frame is not valid JSON", raw=raw, cause=e) from e

    if not isinstance(data, dict):
        raise MessageParseError("Frame is not a JSON object", raw=raw)

    message_type = data.get("type")
    if not isinstance(message_type, str):
        raise MessageParseError("Frame has no string 'type' field", raw=raw)

    model = MESSAGE_TYPES.get(message_type)
    if model is None:
        return None

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MessageParseError(
            f"Invalid {message_type} frame",
            message_type=message_type,
            raw=raw,
            cause=e,
        ) from e
