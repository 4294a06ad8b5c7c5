"""Touchpoint recording: normalization, ordered append and state update."""

from datetime import datetime, timezone
from math import isnan
from typing import Any, Mapping, Optional, Sequence, Union

from .logger import log
from .models import EngagementMetrics, SessionAttributionState, Touchpoint
from .ports import AttributionRepository
from .state import initial_state, update_state

NEUTRAL_SCORE = 0.5


class TouchpointRecorder:
    """Appends touchpoints to a session log and keeps its state current."""

    def __init__(self, repo: AttributionRepository):
        self.repo = repo

    def record(
        self,
        session_id: str,
        affiliate_id: Optional[Union[str, int]] = None,
        quality: Any = None,
        conversion_probability: Any = None,
        channel: Optional[str] = None,
        type: Optional[str] = None,
        timestamp: Optional[Union[datetime, str]] = None,
        engagement: Optional[Union[EngagementMetrics, Mapping[str, Any]]] = None,
        campaign: Optional[Mapping[str, Any]] = None,
        page_url: str = "",
        referrer: str = "",
    ) -> Touchpoint:
        touchpoint = build_touchpoint(
            session_id=session_id,
            affiliate_id=affiliate_id,
            quality=quality,
            conversion_probability=conversion_probability,
            channel=channel,
            type=type,
            timestamp=timestamp,
            engagement=engagement,
            campaign=campaign,
            page_url=page_url,
            referrer=referrer,
        )

        previous = self.repo.fetch_touchpoints(session_id)
        self.repo.append_touchpoint(touchpoint)

        if previous and touchpoint.timestamp < previous[-1].timestamp:
            # Late arrival: the update is order dependent, so rebuild from the log.
            log.debug(f"Out-of-order touchpoint for session {session_id}, replaying state")
            state = replay_state(self.repo.fetch_touchpoints(session_id))
        else:
            state = update_state(self.repo.load_state(session_id), touchpoint)

        self.repo.save_state(session_id, state)
        return touchpoint


def replay_state(touchpoints: Sequence[Touchpoint]) -> SessionAttributionState:
    """Rebuild a session state by applying its touchpoints in order."""
    state = initial_state()
    for touchpoint in touchpoints:
        state = update_state(state, touchpoint)
    return state


def build_touchpoint(
    session_id: str,
    affiliate_id: Optional[Union[str, int]] = None,
    quality: Any = None,
    conversion_probability: Any = None,
    channel: Optional[str] = None,
    type: Optional[str] = None,
    timestamp: Optional[Union[datetime, str]] = None,
    engagement: Optional[Union[EngagementMetrics, Mapping[str, Any]]] = None,
    campaign: Optional[Mapping[str, Any]] = None,
    page_url: str = "",
    referrer: str = "",
) -> Touchpoint:
    """Build a touchpoint, substituting neutral values for missing or invalid fields."""
    return Touchpoint(
        session_id=str(session_id),
        affiliate_id=normalize_affiliate_id(affiliate_id),
        timestamp=as_utc(timestamp),
        interaction_quality=unit_score(quality),
        conversion_probability=unit_score(conversion_probability),
        channel=(channel or "unknown").strip().lower() or "unknown",
        type=(type or "click").strip().lower() or "click",
        engagement=_engagement(engagement),
        campaign={key: str(value) for key, value in (campaign or {}).items() if value is not None},
        page_url=page_url or "",
        referrer=referrer or "",
    )


def normalize_affiliate_id(affiliate_id: Optional[Union[str, int]]) -> Optional[str]:
    if affiliate_id is None:
        return None
    value = str(affiliate_id).strip()
    return value or None


def unit_score(value: Any, default: float = NEUTRAL_SCORE) -> float:
    """Coerce to a float in [0, 1]; unusable input yields ``default``."""
    if value is None:
        return default
    try:
        score = float(value)
    except (TypeError, ValueError):
        return default
    if isnan(score):
        return default
    return max(0.0, min(score, 1.0))


def as_utc(timestamp: Optional[Union[datetime, str]]) -> datetime:
    """Timezone-aware UTC instant; naive datetimes are taken as UTC."""
    if timestamp is None:
        return datetime.now(timezone.utc)
    if isinstance(timestamp, str):
        try:
            timestamp = datetime.fromisoformat(timestamp)
        except ValueError:
            log.debug(f"Unparseable touchpoint timestamp {timestamp!r}, using now")
            return datetime.now(timezone.utc)
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


def _engagement(engagement: Optional[Union[EngagementMetrics, Mapping[str, Any]]]) -> EngagementMetrics:
    if engagement is None:
        return EngagementMetrics()
    if isinstance(engagement, EngagementMetrics):
        return engagement
    return EngagementMetrics(
        time_spent=_count(engagement.get("time_spent"), 0),
        pages_viewed=_count(engagement.get("pages_viewed"), 1),
        interactions=_count(engagement.get("interactions"), 0),
    )


def _count(value: Any, default: int) -> int:
    try:
        return int(value) if value is not None else default
    except (TypeError, ValueError):
        return default
