"""In-process repository adapter."""

import threading
from bisect import bisect_right
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ..models import AttributionResult, HistoricalContext, SessionAttributionState, Touchpoint


class InMemoryAttributionRepository:
    """Keeps touchpoints, states and results in dictionaries."""

    def __init__(self, history: Optional[HistoricalContext] = None):
        self.history = history or HistoricalContext()
        self._touchpoints: Dict[str, List[Touchpoint]] = {}
        self._states: Dict[str, SessionAttributionState] = {}
        self._results: Dict[Tuple[str, str], AttributionResult] = {}
        self._finalized: Set[str] = set()
        self._lock = threading.Lock()

    def append_touchpoint(self, touchpoint: Touchpoint) -> None:
        with self._lock:
            entries = self._touchpoints.setdefault(touchpoint.session_id, [])
            timestamps = [existing.timestamp for existing in entries]
            entries.insert(bisect_right(timestamps, touchpoint.timestamp), touchpoint)

    def fetch_touchpoints(self, session_id: str) -> Sequence[Touchpoint]:
        with self._lock:
            return list(self._touchpoints.get(session_id, []))

    def load_state(self, session_id: str) -> Optional[SessionAttributionState]:
        with self._lock:
            return self._states.get(session_id)

    def save_state(self, session_id: str, state: SessionAttributionState) -> None:
        with self._lock:
            self._states[session_id] = state

    def save_result(self, result: AttributionResult) -> None:
        with self._lock:
            self._results[(result.order_id, result.session_id)] = result

    def fetch_result(self, order_id: str, session_id: str) -> Optional[AttributionResult]:
        with self._lock:
            return self._results.get((order_id, session_id))

    def mark_finalized(self, session_id: str) -> None:
        with self._lock:
            self._finalized.add(session_id)

    def is_finalized(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._finalized

    def fetch_historical_context(
        self,
        channels: Iterable[str],
        affiliate_ids: Iterable[str],
        since: datetime,
    ) -> HistoricalContext:
        wanted_channels = set(channels)
        wanted_affiliates = set(affiliate_ids)
        return HistoricalContext(
            channels={
                channel: performance
                for channel, performance in self.history.channels.items()
                if channel in wanted_channels
            },
            affiliates={
                affiliate_id: performance
                for affiliate_id, performance in self.history.affiliates.items()
                if affiliate_id in wanted_affiliates
            },
        )
