"""Routing of signaling envelopes between registered peers.

Per inbound message:
1. Parse into a typed envelope (drop on failure)
2. Offers: run the SDP sanitizer (terminate the sender on violation)
3. Re-stamp ``id`` with the sender's id and encode (drop on failure)
4. Resolve the destination id in the registry (drop on miss)
5. Forward (fire-and-forget)
"""

import logging
from enum import Enum

from src.signaling.metrics import RelayMetrics
from src.signaling.registry import ConnectionRegistry, PeerNotFoundError
from src.signaling.sdp import SdpSanitizer, SdpViolation
from src.signaling.transport.base import PeerChannel
from src.signaling.transport.websocket_protocol import (
    EnvelopeError,
    ErrorMessage,
    MalformedOfferError,
    OfferEnvelope,
    encode_envelope,
    encode_message,
    parse_envelope,
)

logger = logging.getLogger(__name__)


class RouteOutcome(Enum):
    """What happened to an inbound message."""

    FORWARDED = "forwarded"
    DROPPED_INVALID = "dropped_invalid"
    DROPPED_NOT_FOUND = "dropped_not_found"
    TERMINATED = "terminated"


class MessageRouter:
    """Routes envelopes from one peer to another.

    Never awaits: each call runs to completion on the event loop, so registry
    lookups and sends happen atomically with respect to other connections.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        sanitizer: SdpSanitizer,
        metrics: RelayMetrics | None = None,
        error_replies: bool = False,
    ) -> None:
        """Initialize router.

        Args:
            registry: Live connection registry
            sanitizer: SDP sanitizer applied to offers
            metrics: Relay counters (a private instance is used if omitted)
            error_replies: Send protocol error messages back to the sender on
                invalid messages and routing misses instead of dropping silently
        """
        self.registry = registry
        self.sanitizer = sanitizer
        self.metrics = metrics if metrics is not None else RelayMetrics()
        self.error_replies = error_replies

    def handle_message(self, sender_id: str, sender: PeerChannel, raw: str) -> RouteOutcome:
        """Route one inbound message.

        Args:
            sender_id: Client id of the connection the message arrived on
            sender: Channel of that connection
            raw: Raw message text

        Returns:
            RouteOutcome describing what was done with the message
        """
        self.metrics.messages_received += 1

        try:
            envelope = parse_envelope(raw)
        except MalformedOfferError as e:
            return self._reject_offer(sender_id, sender, e.reason, e.detail)
        except EnvelopeError as e:
            logger.info(
                "Dropping invalid message",
                extra={"client_id": sender_id, "reason": e.reason, "detail": e.detail},
            )
            self.metrics.record_drop(e.reason)
            if self.error_replies:
                self._reply_error(sender, "invalid-message", message=e.reason)
            return RouteOutcome.DROPPED_INVALID

        if isinstance(envelope, OfferEnvelope):
            self.metrics.offers_inspected += 1
            try:
                result = self.sanitizer.sanitize(envelope.sdp)
            except SdpViolation as e:
                return self._reject_offer(sender_id, sender, e.reason, e.detail)

            if result.modified:
                self.metrics.extensions_stripped += len(result.removed)
                envelope = envelope.model_copy(update={"sdp": result.sdp})

        # Inbound id is the destination, outbound id is the origin
        destination = envelope.id
        try:
            outbound = encode_envelope(envelope.model_copy(update={"id": sender_id}))
        except EnvelopeError as e:
            if isinstance(envelope, OfferEnvelope):
                return self._reject_offer(sender_id, sender, e.reason, e.detail)
            logger.info(
                "Dropping unencodable message",
                extra={"client_id": sender_id, "reason": e.reason, "detail": e.detail},
            )
            self.metrics.record_drop(e.reason)
            if self.error_replies:
                self._reply_error(sender, "invalid-message", message=e.reason)
            return RouteOutcome.DROPPED_INVALID

        try:
            peer = self.registry.lookup(destination)
        except PeerNotFoundError:
            logger.info(
                "Peer not found, dropping message",
                extra={"client_id": sender_id, "destination": destination},
            )
            self.metrics.record_drop("not-found")
            if self.error_replies:
                self._reply_error(sender, "not-found", client_id=destination)
            return RouteOutcome.DROPPED_NOT_FOUND

        peer.send(outbound)
        self.metrics.messages_forwarded += 1

        logger.debug(
            "Message forwarded",
            extra={"client_id": sender_id, "destination": destination, "type": envelope.type},
        )
        return RouteOutcome.FORWARDED

    def _reject_offer(
        self, sender_id: str, sender: PeerChannel, reason: str, detail: str
    ) -> RouteOutcome:
        """Drop an offer and forcibly disconnect its sender."""
        logger.warning(
            "Rejected offer, terminating sender",
            extra={"client_id": sender_id, "reason": reason, "detail": detail},
        )
        self.metrics.record_violation(reason)
        sender.terminate()
        return RouteOutcome.TERMINATED

    def _reply_error(
        self,
        channel: PeerChannel,
        code: str,
        client_id: str | None = None,
        message: str | None = None,
    ) -> None:
        """Send an opt-in protocol error reply."""
        try:
            reply = encode_message(ErrorMessage(code=code, id=client_id, message=message))
        except EnvelopeError as e:
            logger.info("Skipping unencodable error reply", extra={"code": code, "detail": e.detail})
            return
        channel.send(reply)
