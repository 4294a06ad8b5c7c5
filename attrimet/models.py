"""Core domain models used by the attribution engine."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Optional, Sequence


@dataclass(frozen=True)
class EngagementMetrics:
    """On-page engagement captured alongside a touchpoint."""

    time_spent: int = 0
    pages_viewed: int = 1
    interactions: int = 0


@dataclass(frozen=True)
class Touchpoint:
    """A single interaction attributable to a session."""

    session_id: str
    affiliate_id: Optional[str]
    timestamp: datetime
    interaction_quality: float = 0.5
    conversion_probability: float = 0.5
    channel: str = "unknown"
    type: str = "click"
    engagement: EngagementMetrics = field(default_factory=EngagementMetrics)
    campaign: Mapping[str, str] = field(default_factory=dict)
    page_url: str = ""
    referrer: str = ""

    @property
    def is_tagged(self) -> bool:
        return bool(self.affiliate_id)


@dataclass(frozen=True)
class SessionAttributionState:
    """Evolving per-session distribution over referring affiliates."""

    affiliate_probabilities: Mapping[str, float] = field(default_factory=dict)
    attribution_entropy: float = 1.0
    conversion_likelihood: float = 0.5
    touchpoint_count: int = 0


@dataclass(frozen=True)
class AttributionResult:
    """Finalized attribution for one (order, session) conversion."""

    order_id: str
    session_id: str
    conversion_value: float
    per_strategy_results: Mapping[str, Mapping[str, float]]
    final_attribution: Mapping[str, float]
    confidence: float
    attribution_entropy: float
    created_at: datetime

    @property
    def is_empty(self) -> bool:
        return not self.final_attribution


@dataclass(frozen=True)
class ChannelPerformance:
    avg_value: float = 0.0
    avg_touchpoints: float = 0.0
    conversions: int = 0


@dataclass(frozen=True)
class AffiliatePerformance:
    total_conversions: int = 0
    total_value: float = 0.0
    avg_value: float = 0.0


@dataclass(frozen=True)
class HistoricalContext:
    """Trailing performance used by the data-driven weighting."""

    channels: Mapping[str, ChannelPerformance] = field(default_factory=dict)
    affiliates: Mapping[str, AffiliatePerformance] = field(default_factory=dict)


@dataclass(frozen=True)
class JourneyAnalysis:
    """Shape of a session's journey."""

    total_touchpoints: int = 0
    journey_duration_hours: float = 0.0
    channel_diversity: int = 0
    engagement_trend: str = "stable"
    key_moments: Sequence[int] = ()
