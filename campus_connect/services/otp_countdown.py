"""
OTP Countdown.

Advisory timer for the "enter your code" view: shows ``m:ss`` until the
code lapses and enables the resend control at zero.  It never decides
whether a code is still valid; the backend does.

The lifetime is taken from the server-issued ``issued_at``/``expires_at``
pair and measured on a monotonic clock, so a skewed or adjusted local
wall clock cannot shorten or stretch it.
"""

from __future__ import annotations

import math
import time
from datetime import datetime
from typing import Callable, Optional


class OtpCountdown:
    """Cooperative countdown driven by a once-per-second ``tick()``.

    Parameters
    ----------
    monotonic:
        Monotonic seconds source; injectable for tests.
    """

    def __init__(self, monotonic: Callable[[], float] = time.monotonic) -> None:
        self._monotonic = monotonic
        self._deadline: Optional[float] = None
        self._remaining: int = 0

    def start(self, issued_at: datetime, expires_at: datetime) -> None:
        """(Re)start from a server-issued challenge window."""
        lifetime = max((expires_at - issued_at).total_seconds(), 0.0)
        self._deadline = self._monotonic() + lifetime
        self._remaining = math.ceil(lifetime)

    def sync(self, issued_at: datetime, expires_at: datetime) -> None:
        """Adopt a new window after a resend."""
        self.start(issued_at, expires_at)

    def stop(self) -> None:
        self._deadline = None
        self._remaining = 0

    def tick(self) -> int:
        """Recompute and return the whole seconds left."""
        if self._deadline is None:
            return 0
        self._remaining = max(0, math.ceil(self._deadline - self._monotonic()))
        return self._remaining

    @property
    def remaining_seconds(self) -> int:
        return self._remaining

    @property
    def is_running(self) -> bool:
        return self._deadline is not None and self._remaining > 0

    @property
    def can_resend(self) -> bool:
        return self._remaining == 0

    @property
    def formatted(self) -> str:
        minutes, seconds = divmod(self._remaining, 60)
        return f"{minutes}:{seconds:02d}"
