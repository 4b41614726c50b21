"""Per-question countdown with pause/resume and a single expiry signal."""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

from config.settings import settings

logger = logging.getLogger(__name__)

ExpiryCallback = Callable[[Any], None]


class _Ticker:
    """One background tick source. Stopped tickers never advance the timer."""

    def __init__(self, owner: "TimerController", interval: float) -> None:
        self._owner = owner
        self._interval = interval
        self.stop = threading.Event()
        self.thread = threading.Thread(target=self._run, name="interview-timer", daemon=True)

    def _run(self) -> None:
        while not self.stop.wait(self._interval):
            if not self._owner._advance(self):
                return


class TimerController:
    """Countdown driven either by a daemon thread or by explicit :meth:`tick` calls.

    ``on_expired(tag)`` is invoked once, outside the internal lock, when the
    remaining time goes from 1 to 0; the timer is disarmed before the call.
    ``tag`` is whatever was passed to :meth:`arm` (the question index).
    """

    def __init__(
        self,
        on_expired: ExpiryCallback,
        *,
        tick_seconds: Optional[float] = None,
        threaded: bool = True,
    ) -> None:
        self._on_expired = on_expired
        self._tick_seconds = tick_seconds or settings.TIMER_TICK_SECONDS
        self._threaded = threaded
        self._lock = threading.Lock()
        self._ticker: Optional[_Ticker] = None
        self._limit = 0
        self._remaining = 0
        self._armed = False
        self._running = False
        self._tag: Any = None

    @property
    def remaining(self) -> int:
        with self._lock:
            return self._remaining

    @property
    def armed(self) -> bool:
        with self._lock:
            return self._armed

    @property
    def paused(self) -> bool:
        with self._lock:
            return self._armed and not self._running

    @property
    def elapsed(self) -> int:
        """Whole seconds counted down since :meth:`arm`; pauses excluded."""
        with self._lock:
            return self._limit - self._remaining if self._armed else 0

    def arm(self, limit_seconds: int, tag: Any = None) -> None:
        if limit_seconds <= 0:
            raise ValueError("limit_seconds must be positive")
        with self._lock:
            self._stop_ticker()
            self._limit = limit_seconds
            self._remaining = limit_seconds
            self._armed = True
            self._running = True
            self._tag = tag
            self._start_ticker()
        logger.debug("timer armed limit=%s tag=%s", limit_seconds, tag)

    def pause(self) -> bool:
        with self._lock:
            if not (self._armed and self._running):
                return False
            self._stop_ticker()
            self._running = False
            return True

    def resume(self) -> bool:
        with self._lock:
            if not self._armed or self._running:
                return False
            self._running = True
            self._start_ticker()
            return True

    def cancel(self) -> None:
        with self._lock:
            self._stop_ticker()
            self._armed = False
            self._running = False
            self._remaining = 0
            self._limit = 0
            self._tag = None

    def tick(self) -> None:
        """Advance one second manually. Ignored while a background ticker owns the clock."""
        self._advance(None)

    def shutdown(self) -> None:
        self.cancel()

    def _advance(self, source: Optional[_Ticker]) -> bool:
        with self._lock:
            if source is not self._ticker or not (self._armed and self._running):
                return False
            self._remaining -= 1
            if self._remaining > 0:
                return True
            tag = self._tag
            self._remaining = 0
            self._armed = False
            self._running = False
            self._tag = None
            self._stop_ticker()
        logger.debug("timer expired tag=%s", tag)
        self._on_expired(tag)
        return False

    def _start_ticker(self) -> None:
        if not self._threaded:
            return
        self._ticker = _Ticker(self, self._tick_seconds)
        self._ticker.thread.start()

    def _stop_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.stop.set()
            self._ticker = None


__all__ = ["TimerController"]
