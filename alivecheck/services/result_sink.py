# alivecheck/services/result_sink.py
"""One-shot delivery of the session's location message."""

import asyncio
import threading
from typing import Callable, Optional, Protocol

import structlog

logger = structlog.get_logger(__name__)


class ResultSink(Protocol):
    """Receives the single location message for an alert. Must not block."""
    def deliver(self, message: str) -> None: ...


class CallbackSink:
    """Adapts a plain callable to the ResultSink protocol."""

    def __init__(self, callback: Callable[[str], None]):
        self._callback = callback

    def deliver(self, message: str) -> None:
        self._callback(message)


class ResultChannel:
    """
    Wraps a ResultSink so it can be completed at most once.

    The first call to `complete` wins and returns True; every later call is
    a no-op returning False. The delivered message is also exposed through
    `wait()` for callers that prefer to await the result.
    """

    def __init__(self, sink: ResultSink):
        self._sink = sink
        self._lock = threading.Lock()
        self._completed = False
        self._waiter: Optional[asyncio.Future] = None
        self.message: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self._completed

    def _future(self) -> asyncio.Future:
        if self._waiter is None:
            self._waiter = asyncio.get_running_loop().create_future()
            if self._completed:
                self._waiter.set_result(self.message)
        return self._waiter

    def complete(self, message: str) -> bool:
        with self._lock:
            if self._completed:
                return False
            self._completed = True
            self.message = message

        if self._waiter is not None and not self._waiter.done():
            self._waiter.set_result(message)

        try:
            self._sink.deliver(message)
        except Exception as e:
            logger.exception("result_sink_deliver_failed", error=str(e))
        return True

    async def wait(self) -> str:
        return await asyncio.shield(self._future())
