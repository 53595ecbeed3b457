# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Controllable time source for deterministic testing.

Idle-session eviction, execution timing and filesystem watching read time
through a :class:`Clock`. Production code uses :data:`SYSTEM_CLOCK`; tests
use :class:`FakeClock` to move time forward without real delays.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Final, Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Time source shared by the registry and the tools."""

    def now(self) -> datetime:
        """Wall-clock time in UTC, used for watch event timestamps."""
        ...

    def monotonic(self) -> float:
        """Seconds on a clock that never goes backwards.

        Session idle times and execution durations are measured against it.
        """
        ...

    def sleep(self, seconds: float) -> None:
        """Pause between filesystem watch polls."""
        ...


class SystemClock:
    """Real clock for production use."""

    def now(self) -> datetime:  # noqa: PLR6301 - implements Clock protocol
        return datetime.now(UTC)

    def monotonic(self) -> float:  # noqa: PLR6301 - implements Clock protocol
        return time.monotonic()

    def sleep(self, seconds: float) -> None:  # noqa: PLR6301 - implements Clock protocol
        time.sleep(seconds)


@dataclass
class FakeClock:
    """Manually driven clock.

    ``sleep`` advances time instead of blocking, so a watch loop or an idle
    sweep runs instantly under test. ``now`` tracks ``monotonic`` from a fixed
    UTC epoch.
    """

    _utc_epoch: datetime = field(
        default_factory=lambda: datetime(2024, 1, 1, tzinfo=UTC)
    )
    _monotonic: float = 0.0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def now(self) -> datetime:
        with self._lock:
            return self._utc_epoch + timedelta(seconds=self._monotonic)

    def monotonic(self) -> float:
        with self._lock:
            return self._monotonic

    def sleep(self, seconds: float) -> None:
        """Advance simulated time without blocking."""
        self.advance(seconds)

    def advance(self, seconds: float) -> None:
        """Move time forward by ``seconds``."""
        with self._lock:
            self._monotonic += seconds


SYSTEM_CLOCK: Final[SystemClock] = SystemClock()

__all__ = ["SYSTEM_CLOCK", "Clock", "FakeClock", "SystemClock"]
