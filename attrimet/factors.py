"""Multiplicative factors behind the data-driven weighting strategy."""

from datetime import datetime
from math import exp, floor, log
from typing import Dict, List, Optional, Sequence, Tuple

from .config import AttributionConfig
from .models import HistoricalContext, JourneyAnalysis, Touchpoint


def analyse_journey(touchpoints: Sequence[Touchpoint], key_moment_quality: float = 0.8) -> JourneyAnalysis:
    """Summarize duration, channel mix, engagement trend and key moments."""
    if not touchpoints:
        return JourneyAnalysis()

    duration_hours = _hours_between(touchpoints[0].timestamp, touchpoints[-1].timestamp)
    channels = {touchpoint.channel for touchpoint in touchpoints}

    total = len(touchpoints)
    midpoint = floor(total / 2)
    early = sum(touchpoint.interaction_quality for touchpoint in touchpoints[:midpoint])
    late = sum(touchpoint.interaction_quality for touchpoint in touchpoints[midpoint:])
    early_avg = early / midpoint if midpoint > 0 else 0.0
    late_avg = late / (total - midpoint) if total - midpoint > 0 else 0.0

    trend = "stable"
    if late_avg > early_avg * 1.2:
        trend = "increasing"
    elif late_avg < early_avg * 0.8:
        trend = "decreasing"

    key_moments = tuple(
        index
        for index, touchpoint in enumerate(touchpoints)
        if touchpoint.interaction_quality >= key_moment_quality
    )

    return JourneyAnalysis(
        total_touchpoints=total,
        journey_duration_hours=duration_hours,
        channel_diversity=len(channels),
        engagement_trend=trend,
        key_moments=key_moments,
    )


def recency_factor(
    timestamp: datetime,
    conversion_time: datetime,
    half_life_hours: float = 168.0,
    floor_value: float = 0.1,
) -> float:
    """Exponential decay with the given half-life, never below ``floor_value``."""
    hours_ago = max(_hours_between(timestamp, conversion_time), 0.0)
    decay_rate = log(2) / half_life_hours
    return max(exp(-decay_rate * hours_ago), floor_value)


def position_factor(index: int, total_count: int) -> float:
    """U-shaped boost: 1.4 first, 1.5 last, a shallow parabola in between."""
    if total_count <= 1:
        return 1.0
    if index == 0:
        return 1.4
    if index == total_count - 1:
        return 1.5

    normalized_position = index / (total_count - 1)
    return max(-0.6 * (normalized_position - 0.5) ** 2 + 0.95, 0.5)


def channel_effectiveness(channel: str, history: HistoricalContext, config: AttributionConfig) -> float:
    if not channel or channel not in history.channels:
        return 1.0

    performance = history.channels[channel]
    if performance.conversions < config.min_channel_conversions:
        return 1.0
    return _tier_factor(performance.avg_value, config.channel_value_tiers)


def touchpoint_type_factor(touchpoint_type: str, config: AttributionConfig) -> float:
    return config.type_factors.get(touchpoint_type, config.default_type_factor)


def engagement_depth(touchpoint: Touchpoint) -> float:
    """1.0 plus bonuses for time on page, pages viewed and interactions; capped at 1.5."""
    engagement = touchpoint.engagement
    factor = 1.0

    if engagement.time_spent >= 300:
        factor += 0.3
    elif engagement.time_spent >= 120:
        factor += 0.2
    elif engagement.time_spent >= 30:
        factor += 0.1

    if engagement.pages_viewed >= 5:
        factor += 0.2
    elif engagement.pages_viewed >= 3:
        factor += 0.1

    if engagement.interactions >= 10:
        factor += 0.2
    elif engagement.interactions >= 5:
        factor += 0.1

    return min(factor, 1.5)


def incremental_value(touchpoints: Sequence[Touchpoint], index: int) -> float:
    """Reward new channels and quality jumps, penalise repeated recent affiliates."""
    touchpoint = touchpoints[index]
    factor = 1.0

    if all(previous.channel != touchpoint.channel for previous in touchpoints[:index]):
        factor += 0.15

    recent = touchpoints[max(0, index - 3):index]
    if any(previous.affiliate_id == touchpoint.affiliate_id for previous in recent):
        factor -= 0.15

    if index > 0:
        previous_quality = touchpoints[index - 1].interaction_quality
        if touchpoint.interaction_quality > previous_quality + 0.2:
            factor += 0.1

    return _clamp(factor, 0.7, 1.2)


def journey_context_factor(
    index: int,
    journey: JourneyAnalysis,
    long_journey_hours: float = 720.0,
) -> float:
    factor = 1.0

    if index in journey.key_moments:
        factor += 0.15

    is_late_stage = index >= journey.total_touchpoints * 0.7
    if journey.engagement_trend == "increasing" and is_late_stage:
        factor += 0.1
    elif journey.engagement_trend == "decreasing" and not is_late_stage:
        factor += 0.1

    # fatigue
    if journey.journey_duration_hours > long_journey_hours:
        factor -= 0.1

    return _clamp(factor, 0.8, 1.2)


def affiliate_performance_factor(
    affiliate_id: Optional[str],
    history: HistoricalContext,
    config: AttributionConfig,
) -> float:
    if not affiliate_id or affiliate_id not in history.affiliates:
        return 1.0

    performance = history.affiliates[affiliate_id]
    if performance.total_conversions < config.min_affiliate_conversions:
        return 1.0
    return _tier_factor(performance.avg_value, config.affiliate_value_tiers)


def timing_appropriateness(touchpoint: Touchpoint, touchpoints: Sequence[Touchpoint]) -> float:
    """Boost business hours, weekdays and a 2-48h gap since the previous touchpoint."""
    timestamp = touchpoint.timestamp
    factor = 1.0

    if 9 <= timestamp.hour <= 17:
        factor += 0.1
    if timestamp.weekday() < 5:
        factor += 0.05

    if len(touchpoints) > 1:
        earlier = [other.timestamp for other in touchpoints if other.timestamp < timestamp]
        if earlier:
            hours_since_previous = _hours_between(max(earlier), timestamp)
            if 2 <= hours_since_previous <= 48:
                factor += 0.05

    return _clamp(factor, 0.8, 1.2)


def data_driven_factors(
    touchpoints: Sequence[Touchpoint],
    index: int,
    journey: JourneyAnalysis,
    history: HistoricalContext,
    conversion_time: datetime,
    config: AttributionConfig,
) -> Dict[str, float]:
    """Return every factor for one affiliate-tagged touchpoint, keyed by name."""
    touchpoint = touchpoints[index]
    return {
        "quality": touchpoint.interaction_quality,
        "conversion_prob": touchpoint.conversion_probability,
        "recency": recency_factor(
            touchpoint.timestamp,
            conversion_time,
            half_life_hours=config.recency_half_life_hours,
            floor_value=config.recency_floor,
        ),
        "position": position_factor(index, len(touchpoints)),
        "channel": channel_effectiveness(touchpoint.channel, history, config),
        "type": touchpoint_type_factor(touchpoint.type, config),
        "engagement": engagement_depth(touchpoint),
        "incremental": incremental_value(touchpoints, index),
        "journey_context": journey_context_factor(index, journey, config.long_journey_hours),
        "affiliate": affiliate_performance_factor(touchpoint.affiliate_id, history, config),
        "timing": timing_appropriateness(touchpoint, touchpoints),
    }


def _tier_factor(value: float, tiers: List[Tuple[float, float]]) -> float:
    for minimum, factor in tiers:
        if value >= minimum:
            return factor
    return tiers[-1][1] if tiers else 1.0


def _hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600


def _clamp(value: float, lower: float, upper: float) -> float:
    return max(min(value, upper), lower)
