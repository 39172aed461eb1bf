"""WebSocket message protocol definitions.

Defines Pydantic models for signaling envelopes. Messages are UTF-8 JSON
objects carried as WebSocket text frames.

Direction of the ``id`` field:
    - Client → Server: ``id`` is the destination client
    - Server → Client: ``id`` is the originating client

The relay only interprets ``type``, ``id`` and, for offers, ``sdp``. Every
other field is kept verbatim and forwarded unchanged.
"""

import json
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    ValidationError,
)
from pydantic_core import PydanticSerializationError


class EnvelopeError(ValueError):
    """Inbound message could not be parsed as a routable envelope."""

    def __init__(self, reason: str, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason}: {detail}" if detail else reason)


class MalformedOfferError(EnvelopeError):
    """Offer envelope whose ``sdp`` is missing or not a string."""


class IceServer(BaseModel):
    """STUN/TURN server entry handed to clients."""

    urls: str | list[str] = Field(..., description="STUN/TURN URL(s)")
    username: str | None = Field(default=None, description="TURN username")
    credential: str | None = Field(default=None, description="TURN credential")


class RelayEnvelope(BaseModel):
    """Client → Server: any routable envelope (answer, candidate, ...).

    Unknown fields are preserved and forwarded as-is.
    """

    model_config = ConfigDict(extra="allow")

    type: str | None = Field(default=None, description="Envelope type")
    id: str = Field(..., min_length=1, description="Destination (in) / origin (out)")


class OfferEnvelope(RelayEnvelope):
    """Client → Server: offer envelope whose SDP is inspected before relay."""

    type: Literal["offer"] = "offer"
    sdp: str = Field(..., description="Session description")


class HelloMessage(BaseModel):
    """Server → Client: greeting carrying the assigned client id.

    Sent once, immediately after registration.
    """

    type: Literal["hello"] = "hello"
    id: str = Field(..., description="Assigned client identifier")


class IceServersMessage(BaseModel):
    """Server → Client: ICE server configuration.

    Sent once, immediately after the greeting.
    """

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["iceServers"] = "iceServers"
    ice_servers: list[IceServer] = Field(default_factory=list, alias="iceServers")


class ErrorMessage(BaseModel):
    """Server → Client: protocol error notification.

    Only sent when error replies are explicitly enabled.
    """

    type: Literal["error"] = "error"
    code: str = Field(..., description="Error code (not-found, invalid-message, ...)")
    id: str | None = Field(default=None, description="Client id the error refers to")
    message: str | None = Field(default=None, description="Error description")


# Union type for all server → client messages generated by the relay
ServerMessage = HelloMessage | IceServersMessage | ErrorMessage


def _reject_constant(name: str) -> Any:
    """Reject NaN/Infinity, which are not valid JSON."""
    raise ValueError(f"Invalid JSON constant: {name}")


def _envelope_tag(value: Any) -> str:
    """Discriminate inbound envelopes on their ``type`` field."""
    if isinstance(value, dict):
        return "offer" if value.get("type") == "offer" else "relay"
    return "offer" if getattr(value, "type", None) == "offer" else "relay"


# Union type for all client → server envelopes
ClientEnvelope = Annotated[
    Annotated[OfferEnvelope, Tag("offer")] | Annotated[RelayEnvelope, Tag("relay")],
    Discriminator(_envelope_tag),
]

_client_envelope_adapter: TypeAdapter[OfferEnvelope | RelayEnvelope] = TypeAdapter(
    ClientEnvelope
)


def parse_envelope(raw: str | bytes) -> OfferEnvelope | RelayEnvelope:
    """Parse an inbound message into a typed envelope.

    Args:
        raw: Raw JSON text received from a client

    Returns:
        OfferEnvelope for ``type == "offer"``, RelayEnvelope otherwise

    Raises:
        EnvelopeError: If the message is not a JSON object with a destination id
        MalformedOfferError: If an offer (with a valid id) carries no string sdp
    """
    try:
        data = json.loads(raw, parse_constant=_reject_constant)
    except ValueError as e:
        raise EnvelopeError("invalid-json", str(e)) from e

    if not isinstance(data, dict):
        raise EnvelopeError("not-an-object", type(data).__name__)

    try:
        return _client_envelope_adapter.validate_python(data)
    except ValidationError as e:
        failed_fields = {str(err["loc"][1]) for err in e.errors() if len(err["loc"]) > 1}
        if "id" in failed_fields:
            raise EnvelopeError("missing-id", str(data.get("id"))) from e
        if _envelope_tag(data) == "offer":
            raise MalformedOfferError("malformed-offer", ", ".join(sorted(failed_fields))) from e
        raise EnvelopeError("invalid-envelope", ", ".join(sorted(failed_fields))) from e


def encode_envelope(envelope: RelayEnvelope) -> str:
    """Serialize a relayed envelope to JSON text.

    A ``type`` absent from the inbound message is not added on the way out.

    Raises:
        EnvelopeError: If a string holds a lone surrogate (a legal JSON
            escape that has no UTF-8 encoding)
    """
    exclude = None if "type" in envelope.model_fields_set else {"type"}
    try:
        return envelope.model_dump_json(exclude=exclude)
    except PydanticSerializationError as e:
        raise EnvelopeError("unencodable", str(e)) from e


def encode_message(message: ServerMessage) -> str:
    """Serialize a relay-generated server message to JSON text.

    Raises:
        EnvelopeError: If a string holds a lone surrogate
    """
    try:
        return message.model_dump_json(by_alias=True, exclude_none=True)
    except PydanticSerializationError as e:
        raise EnvelopeError("unencodable", str(e)) from e
