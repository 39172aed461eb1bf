"""In-process relay counters.

Counters are plain integers updated from the event loop thread and exposed
through the health server's ``/metrics/summary`` endpoint.
"""

import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any


@dataclass
class RelayMetrics:
    """Relay activity counters."""

    # Connection lifecycle
    connections_accepted: int = 0
    connections_rejected: int = 0  # Duplicate id at registration
    connections_closed: int = 0

    # Message routing
    messages_received: int = 0
    messages_forwarded: int = 0
    messages_dropped: Counter[str] = field(default_factory=Counter)  # reason → count
    send_failures: int = 0

    # SDP inspection
    offers_inspected: int = 0
    extensions_stripped: int = 0
    violations: Counter[str] = field(default_factory=Counter)  # reason → count

    started_at: float = field(default_factory=time.monotonic)

    def record_drop(self, reason: str) -> None:
        """Record a dropped inbound message."""
        self.messages_dropped[reason] += 1

    def record_violation(self, reason: str) -> None:
        """Record an offer rejected by the SDP sanitizer."""
        self.violations[reason] += 1

    def record_send_failure(self, error: BaseException) -> None:
        """Record an outbound message that could not be delivered."""
        self.send_failures += 1

    @property
    def uptime_s(self) -> float:
        return time.monotonic() - self.started_at

    def snapshot(self) -> dict[str, Any]:
        """Return a JSON-serializable copy of all counters."""
        return {
            "connections_accepted": self.connections_accepted,
            "connections_rejected": self.connections_rejected,
            "connections_closed": self.connections_closed,
            "messages_received": self.messages_received,
            "messages_forwarded": self.messages_forwarded,
            "messages_dropped": dict(self.messages_dropped),
            "send_failures": self.send_failures,
            "offers_inspected": self.offers_inspected,
            "extensions_stripped": self.extensions_stripped,
            "violations": dict(self.violations),
            "uptime_seconds": self.uptime_s,
        }
