import time
from dataclasses import dataclass, field
from typing import Callable

from guestbook.errors import DeadlineExceeded


@dataclass(frozen=True)
class Deadline:
    """Absolute point in monotonic time by which a submission must finish."""

    expires_at: float
    clock: Callable[[], float] = field(default=time.monotonic, compare=False)

    @classmethod
    def after(cls, seconds: float, clock: Callable[[], float] = time.monotonic) -> "Deadline":
        return cls(expires_at=clock() + seconds, clock=clock)

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self.clock())

    def expired(self) -> bool:
        return self.clock() >= self.expires_at

    def check(self, stage: str) -> None:
        if self.expired():
            raise DeadlineExceeded(f"deadline exceeded during {stage}")


def call_timeout(deadline: Deadline | None) -> float | None:
    """Per-call timeout for a store request made under `deadline`."""
    if deadline is None:
        return None
    return deadline.remaining()
