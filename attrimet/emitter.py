"""Handoff of finalized results to an external persistence/forwarding sink."""

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Optional, Set

from .logger import log
from .models import AttributionResult
from .ports import ResultSink


class ResultEmitter:
    """
    Delivers results to ``on_result`` on a background worker.

    At most ``max_pending`` deliveries may be queued; beyond that a result is
    dropped with a warning so finalization never waits on the sink. The sink
    is responsible for its own retries.
    """

    def __init__(self, on_result: ResultSink, max_pending: int = 1000, max_workers: int = 1):
        self.on_result = on_result
        self.max_pending = max_pending
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="attrimet-emit")
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()
        self.dropped = 0

    def emit(self, result: AttributionResult) -> bool:
        """Queue a result for delivery; returns False if it was dropped."""
        with self._lock:
            if len(self._pending) >= self.max_pending:
                self.dropped += 1
                log.warning(
                    f"Result emitter full ({self.max_pending} pending), dropping result "
                    f"for order {result.order_id} session {result.session_id}"
                )
                return False
            future = self._executor.submit(self._deliver, result)
            self._pending.add(future)
        future.add_done_callback(self._discard)
        return True

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for queued deliveries; returns True if all completed."""
        with self._lock:
            pending = set(self._pending)
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def close(self, wait_for_pending: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_pending)

    def _deliver(self, result: AttributionResult) -> None:
        try:
            self.on_result(result)
        except Exception:
            log.exception(f"Result sink failed for order {result.order_id} session {result.session_id}")

    def _discard(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)


class SynchronousEmitter:
    """Calls ``on_result`` inline; sink failures are logged, not raised."""

    def __init__(self, on_result: ResultSink):
        self.on_result = on_result

    def emit(self, result: AttributionResult) -> bool:
        try:
            self.on_result(result)
        except Exception:
            log.exception(f"Result sink failed for order {result.order_id} session {result.session_id}")
            return False
        return True

    def flush(self, timeout: Optional[float] = None) -> bool:
        return True

    def close(self, wait_for_pending: bool = True) -> None:
        return None
