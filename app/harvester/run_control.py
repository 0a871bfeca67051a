from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from . import config


class RunControl:
    """Cooperative pause/resume/stop flags shared with a running job.

    The engine polls these at its suspension points; nothing here interrupts
    a browser call in flight.
    """

    def __init__(
        self,
        *,
        poll_interval: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._paused = threading.Event()
        self._stopped = threading.Event()
        self._poll_interval = config.PAUSE_POLL_SECONDS if poll_interval is None else poll_interval
        self._sleep = sleep

    def pause(self) -> None:
        self._paused.set()

    def resume(self) -> None:
        self._paused.clear()

    def stop(self) -> None:
        self._stopped.set()
        self._paused.clear()

    def reset(self) -> None:
        self._paused.clear()
        self._stopped.clear()

    @property
    def paused(self) -> bool:
        return self._paused.is_set()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def wait_while_paused(self, on_pause: Optional[Callable[[], None]] = None) -> bool:
        """Block while paused. Returns ``False`` when a stop was requested.

        ``on_pause`` runs once when the wait begins (e.g. to flush state).
        """

        if self._paused.is_set() and not self._stopped.is_set():
            if on_pause is not None:
                on_pause()
            while self._paused.is_set() and not self._stopped.is_set():
                self._sleep(self._poll_interval)
        return not self._stopped.is_set()


__all__ = ["RunControl"]
