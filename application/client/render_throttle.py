"""Bounded-rate rendering for the displayed conversation."""

import asyncio
import logging
from typing import Callable, Optional

from common.config.config import RENDER_INTERVAL

logger = logging.getLogger(__name__)


class RenderThrottle:
    """Coalesces render requests to at most one per ``interval`` seconds.

    The render callback always reads the authoritative state, so coalescing
    only drops intermediate frames, never data. An interval of ``0`` renders
    synchronously on every request.
    """

    def __init__(self, render: Callable[[], None], interval: float = RENDER_INTERVAL):
        self._render = render
        self.interval = interval
        self._handle: Optional[asyncio.TimerHandle] = None
        self._last_render: Optional[float] = None

    @property
    def scheduled(self) -> bool:
        return self._handle is not None

    def request(self) -> None:
        """Render now or schedule one trailing render within the interval."""
        if self.interval <= 0:
            self._fire()
            return
        if self._handle is not None:
            return

        loop = asyncio.get_running_loop()
        now = loop.time()
        if self._last_render is None or now - self._last_render >= self.interval:
            self._fire()
        else:
            delay = self.interval - (now - self._last_render)
            self._handle = loop.call_later(delay, self._fire)

    def flush(self) -> None:
        """Render immediately, replacing any scheduled render."""
        self.cancel()
        self._fire()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        try:
            self._last_render = asyncio.get_running_loop().time()
        except RuntimeError:
            self._last_render = None
        try:
            self._render()
        except Exception:
            logger.exception("Render callback failed")
