"""Per-request transaction identity."""

import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field

# Reserved request header. "on" enables extra logging for one transaction.
EXTRA_LOGGING_HEADER = "X-Extra-Logging"


@dataclass(frozen=True)
class TransactionContext:
    """Identity and timing of a single request.

    Created once when the request enters the pipeline and passed explicitly to
    every stage that logs or measures the request.
    """

    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    start: float = field(default_factory=time.monotonic)
    extra_logging: bool = False

    @property
    def elapsed(self) -> float:
        """Seconds since the transaction started."""
        return time.monotonic() - self.start

    @property
    def delta_to_start_ms(self) -> int:
        """Whole milliseconds since the transaction started."""
        return int(self.elapsed * 1000)

    def __str__(self) -> str:
        return f"#tid_{self.id}"


def extra_logging_requested(headers: Mapping[str, str]) -> bool:
    """Check the reserved header. Only "on", in any case, enables extra logging."""
    value = headers.get(EXTRA_LOGGING_HEADER)
    if value is None:
        return False
    return value.lower() == "on"


def allocate_transaction(headers: Mapping[str, str]) -> TransactionContext:
    """Allocate the transaction for an inbound request."""
    return TransactionContext(extra_logging=extra_logging_requested(headers))
