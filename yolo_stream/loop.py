"""
Streaming frame loop.

One asyncio task drives read -> detect -> render -> deliver, one tick at a
time. A tick always runs to completion before the next one is scheduled, so
frames never overlap and a slow tick simply delays the next one (no catch-up).
`stop()` is honoured at the next tick boundary.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from .canvas import Canvas
from .config import DetectorConfig, merge_config
from .frames import FrameProvider
from .runtime import DetectionPipeline
from .types import FrameResult

LOGGER = logging.getLogger(__name__)

ResultSink = Callable[[FrameResult], Union[None, Awaitable[Any]]]

# Idle wait between reads while the provider has no frame (one 60 Hz frame).
DEFAULT_RETRY_INTERVAL = 1.0 / 60.0


class LoopState(str, Enum):
    IDLE = "idle"
    REQUESTING_FRAME = "requesting_frame"
    PROCESSING = "processing"
    WAITING_FOR_NEXT_TICK = "waiting_for_next_tick"
    STOPPED = "stopped"


@dataclass
class LoopStats:
    ticks: int = 0
    frames_processed: int = 0
    frames_unavailable: int = 0
    frames_failed: int = 0
    last_error: Optional[str] = None


class FrameLoop:
    """
    Repeatedly detect and render frames from `provider` onto `surface`.

    Each completed frame's `FrameResult` is passed to `sink` (sync or async
    callable, e.g. `asyncio.Queue.put`) in frame order. Async sinks are
    awaited, so a bounded queue that fills up throttles the loop instead of
    dropping frames; use an unbounded queue or a non-blocking sink to keep
    the tick rate independent of the consumer.

    A tick with no frame available clears the surface and waits at least
    `retry_interval` (one 60 Hz frame by default) before asking again. A
    failing tick is logged and counted; the loop keeps going until `stop()` is
    called or the task is cancelled.
    """

    def __init__(
        self,
        pipeline: DetectionPipeline,
        provider: FrameProvider,
        surface: Canvas,
        *,
        sink: Optional[ResultSink] = None,
        tick_interval: float = 0.0,
        retry_interval: float = DEFAULT_RETRY_INTERVAL,
    ) -> None:
        if tick_interval < 0:
            raise ValueError("tick_interval must be >= 0")
        if retry_interval < 0:
            raise ValueError("retry_interval must be >= 0")
        self.pipeline = pipeline
        self.provider = provider
        self.surface = surface
        self.sink = sink
        self.tick_interval = float(tick_interval)
        self.retry_interval = float(retry_interval)
        self.stats = LoopStats()
        self._state = LoopState.IDLE
        self._stop_requested = False
        self._pending_config: Optional[DetectorConfig] = None

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def config(self) -> DetectorConfig:
        return self._pending_config or self.pipeline.config

    def stop(self) -> None:
        """
        Request a stop. Takes effect at the next tick boundary; a frame already
        being processed is finished first.
        """

        self._stop_requested = True

    def update_config(self, config: Optional[DetectorConfig] = None, **options: Any) -> DetectorConfig:
        """
        Replace the configuration from the next tick on. Returns the new snapshot.
        """

        new_config = merge_config(config or self.config, **options)
        self._pending_config = new_config
        return new_config

    def start(self) -> "asyncio.Task[LoopStats]":
        return asyncio.ensure_future(self.run())

    async def run(self) -> LoopStats:
        if self._state is not LoopState.IDLE:
            raise RuntimeError(f"FrameLoop can only run once (state={self._state.value})")

        loop = asyncio.get_running_loop()
        try:
            while not self._stop_requested:
                self._apply_pending_config()
                started = loop.time()
                got_frame = await self._tick()

                self._state = LoopState.WAITING_FOR_NEXT_TICK
                delay = self.tick_interval - (loop.time() - started)
                if not got_frame:
                    delay = max(delay, self.retry_interval)
                await asyncio.sleep(max(0.0, delay))
        finally:
            self._state = LoopState.STOPPED
            LOGGER.debug(
                "Frame loop stopped: ticks=%d processed=%d unavailable=%d failed=%d",
                self.stats.ticks,
                self.stats.frames_processed,
                self.stats.frames_unavailable,
                self.stats.frames_failed,
            )
        return self.stats

    def _apply_pending_config(self) -> None:
        if self._pending_config is not None:
            self.pipeline = self.pipeline.with_config(self._pending_config)
            self._pending_config = None

    def _record_failure(self, exc: Exception) -> None:
        self.stats.frames_failed += 1
        self.stats.last_error = repr(exc)

    async def _tick(self) -> bool:
        """
        One read -> detect -> render -> deliver pass. Returns whether a frame was read.
        """

        self._state = LoopState.REQUESTING_FRAME
        self.stats.ticks += 1

        try:
            frame = self.provider.read()
        except Exception as exc:
            LOGGER.exception("Frame provider failed on tick %d", self.stats.ticks)
            self._record_failure(exc)
            return False

        if frame is None:
            LOGGER.debug("No frame available on tick %d", self.stats.ticks)
            self.stats.frames_unavailable += 1
            try:
                self.surface.clear()
            except Exception as exc:
                LOGGER.exception("Clearing the surface failed on tick %d", self.stats.ticks)
                self._record_failure(exc)
            return False

        self._state = LoopState.PROCESSING
        try:
            result = await self.pipeline.detect_async(frame)
            self.pipeline.draw(frame, self.surface, result)
        except Exception as exc:
            LOGGER.exception("Detection failed on tick %d", self.stats.ticks)
            self._record_failure(exc)
            return True

        self.stats.frames_processed += 1
        await self._deliver(result)
        return True

    async def _deliver(self, result: FrameResult) -> None:
        if self.sink is None:
            return
        try:
            out = self.sink(result)
            if inspect.isawaitable(out):
                await out
        except Exception as exc:
            LOGGER.exception("Result sink failed on tick %d", self.stats.ticks)
            self.stats.last_error = repr(exc)
