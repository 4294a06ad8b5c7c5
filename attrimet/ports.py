"""Port definitions for persisting touchpoints, session state and results."""

from datetime import datetime
from typing import Iterable, Optional, Protocol, Sequence

from .models import AttributionResult, HistoricalContext, SessionAttributionState, Touchpoint


class AttributionRepository(Protocol):
    """Repository interface that adapters can implement for any backend."""

    def append_touchpoint(self, touchpoint: Touchpoint) -> None:
        """Store a touchpoint, keeping the session log in timestamp order."""

    def fetch_touchpoints(self, session_id: str) -> Sequence[Touchpoint]:
        """Return a session's touchpoints, oldest first."""

    def load_state(self, session_id: str) -> Optional[SessionAttributionState]:
        """Return the session state, or None before the first touchpoint."""

    def save_state(self, session_id: str, state: SessionAttributionState) -> None:
        """Replace the stored session state."""

    def save_result(self, result: AttributionResult) -> None:
        """Store a finalized result."""

    def fetch_result(self, order_id: str, session_id: str) -> Optional[AttributionResult]:
        """Return the result for an (order, session) pair, if finalized."""

    def mark_finalized(self, session_id: str) -> None:
        """Close a session to further touchpoints."""

    def is_finalized(self, session_id: str) -> bool:
        """Whether the session has converted."""

    def fetch_historical_context(
        self,
        channels: Iterable[str],
        affiliate_ids: Iterable[str],
        since: datetime,
    ) -> HistoricalContext:
        """Return channel and affiliate performance recorded after ``since``."""


class ResultSink(Protocol):
    """External collaborator receiving finalized results."""

    def __call__(self, result: AttributionResult) -> None:
        """Persist or forward a result."""


class Emitter(Protocol):
    """Hands finalized results to a ``ResultSink``."""

    def emit(self, result: AttributionResult) -> bool:
        """Queue or deliver a result; False if it was not accepted."""

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for accepted results to be delivered."""

    def close(self, wait_for_pending: bool = True) -> None:
        """Stop accepting results."""
