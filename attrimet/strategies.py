"""
Weighting strategies that spread conversion credit across touchpoints.

Each strategy is a pure function ``(touchpoints, state, context) -> weights``
returning one weight per touchpoint. Touchpoints without an affiliate always
get 0; when any touchpoint is tagged the weights sum to 1.
"""

from dataclasses import dataclass, field
from datetime import datetime
from math import prod
from typing import Callable, Dict, List, Optional, Sequence

from .config import AttributionConfig, get_config
from .exceptions import ConfigurationError
from .factors import analyse_journey, data_driven_factors
from .models import HistoricalContext, SessionAttributionState, Touchpoint

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class StrategyContext:
    """Inputs the strategies read besides the touchpoints and session state."""

    conversion_time: Optional[datetime] = None
    config: AttributionConfig = field(default_factory=get_config)
    history: HistoricalContext = field(default_factory=HistoricalContext)

    def resolve_conversion_time(self, touchpoints: Sequence[Touchpoint]) -> datetime:
        # Without an explicit conversion instant, convert at the last touchpoint.
        if self.conversion_time is not None:
            return self.conversion_time
        return max(touchpoint.timestamp for touchpoint in touchpoints)


WeightFunction = Callable[
    [Sequence[Touchpoint], SessionAttributionState, Optional[StrategyContext]],
    List[float],
]


def last_click_weights(
    touchpoints: Sequence[Touchpoint],
    state: SessionAttributionState,
    context: Optional[StrategyContext] = None,
) -> List[float]:
    weights = [0.0] * len(touchpoints)
    tagged = _tagged_indices(touchpoints)
    if tagged:
        weights[tagged[-1]] = 1.0
    return weights


def first_click_weights(
    touchpoints: Sequence[Touchpoint],
    state: SessionAttributionState,
    context: Optional[StrategyContext] = None,
) -> List[float]:
    weights = [0.0] * len(touchpoints)
    tagged = _tagged_indices(touchpoints)
    if tagged:
        weights[tagged[0]] = 1.0
    return weights


def linear_weights(
    touchpoints: Sequence[Touchpoint],
    state: SessionAttributionState,
    context: Optional[StrategyContext] = None,
) -> List[float]:
    tagged = _tagged_indices(touchpoints)
    if not tagged:
        return [0.0] * len(touchpoints)

    share = 1.0 / len(tagged)
    return [share if touchpoint.is_tagged else 0.0 for touchpoint in touchpoints]


def time_decay_weights(
    touchpoints: Sequence[Touchpoint],
    state: SessionAttributionState,
    context: Optional[StrategyContext] = None,
) -> List[float]:
    """
    Weight each tagged touchpoint by ``rate ** days_before_conversion``.

    With the default rate of 0.7 a touchpoint loses half its weight in
    roughly 1.9 days.
    """
    if not _tagged_indices(touchpoints):
        return [0.0] * len(touchpoints)

    context = context or StrategyContext()
    conversion_time = context.resolve_conversion_time(touchpoints)
    rate = context.config.time_decay_rate

    weights = []
    for touchpoint in touchpoints:
        if not touchpoint.is_tagged:
            weights.append(0.0)
            continue
        days = max((conversion_time - touchpoint.timestamp).total_seconds(), 0.0) / SECONDS_PER_DAY
        weights.append(rate**days)

    return _normalize_or_linear(weights, touchpoints)


def position_based_weights(
    touchpoints: Sequence[Touchpoint],
    state: SessionAttributionState,
    context: Optional[StrategyContext] = None,
) -> List[float]:
    """U-shaped: 40% first, 40% last, 20% split across the middle."""
    weights = [0.0] * len(touchpoints)
    tagged = _tagged_indices(touchpoints)
    count = len(tagged)

    if count == 0:
        return weights
    if count == 1:
        weights[tagged[0]] = 1.0
    elif count == 2:
        weights[tagged[0]] = 0.5
        weights[tagged[1]] = 0.5
    else:
        weights[tagged[0]] = 0.4
        weights[tagged[-1]] = 0.4
        middle_weight = 0.2 / (count - 2)
        for index in tagged[1:-1]:
            weights[index] = middle_weight

    return weights


def data_driven_weights(
    touchpoints: Sequence[Touchpoint],
    state: SessionAttributionState,
    context: Optional[StrategyContext] = None,
) -> List[float]:
    """
    Heuristic composite of eleven multiplicative factors.

    Raw products are normalized, any non-zero weight under the configured
    floor is raised to it, and the vector is renormalized once more.
    """
    if not touchpoints:
        return []

    context = context or StrategyContext()
    raw = [
        prod(factors.values()) if factors is not None else 0.0
        for factors in explain_data_driven(touchpoints, state, context)
    ]
    weights = _normalize_or_linear(raw, touchpoints)
    if not any(weights):
        return weights

    floor_value = context.config.min_weight_floor
    weights = [floor_value if 0 < weight < floor_value else weight for weight in weights]

    return normalize_weights(weights)


def explain_data_driven(
    touchpoints: Sequence[Touchpoint],
    state: SessionAttributionState,
    context: Optional[StrategyContext] = None,
) -> List[Optional[Dict[str, float]]]:
    """Per-touchpoint factor breakdown; ``None`` for untagged touchpoints."""
    if not touchpoints:
        return []

    context = context or StrategyContext()
    config = context.config
    conversion_time = context.resolve_conversion_time(touchpoints)
    journey = analyse_journey(touchpoints, key_moment_quality=config.key_moment_quality)

    breakdown: List[Optional[Dict[str, float]]] = []
    for index, touchpoint in enumerate(touchpoints):
        if not touchpoint.is_tagged:
            breakdown.append(None)
            continue
        breakdown.append(
            data_driven_factors(
                touchpoints,
                index,
                journey=journey,
                history=context.history,
                conversion_time=conversion_time,
                config=config,
            )
        )
    return breakdown


def advanced_superposition_weights(
    touchpoints: Sequence[Touchpoint],
    state: SessionAttributionState,
    context: Optional[StrategyContext] = None,
) -> List[float]:
    """Weight by the session's affiliate probability, entropy and touchpoint quality."""
    if not state.affiliate_probabilities:
        return linear_weights(touchpoints, state, context)

    uncertainty = state.attribution_entropy
    weights = []
    for touchpoint in touchpoints:
        if not touchpoint.is_tagged:
            weights.append(0.0)
            continue
        probability = state.affiliate_probabilities.get(touchpoint.affiliate_id, 0.0)
        weight = probability * (1 + uncertainty * 0.1)
        weight *= 0.5 + touchpoint.interaction_quality * 0.5
        weights.append(weight)

    return _normalize_or_linear(weights, touchpoints)


STRATEGIES: Dict[str, WeightFunction] = {
    "last_click": last_click_weights,
    "first_click": first_click_weights,
    "linear": linear_weights,
    "time_decay": time_decay_weights,
    "position_based": position_based_weights,
    "data_driven": data_driven_weights,
    "advanced_superposition": advanced_superposition_weights,
}


def get_strategy(name: str) -> WeightFunction:
    try:
        return STRATEGIES[name]
    except KeyError:
        raise ConfigurationError(f"Unknown attribution strategy: {name}", details={"strategy": name}) from None


def normalize_weights(weights: Sequence[float]) -> List[float]:
    """Scale to sum 1; an all-zero vector stays all zero."""
    total = sum(weights)
    if total <= 0:
        return [0.0] * len(weights)
    return [weight / total for weight in weights]


def _normalize_or_linear(weights: Sequence[float], touchpoints: Sequence[Touchpoint]) -> List[float]:
    # Tagged touchpoints whose raw weights all collapsed to zero share credit equally.
    if sum(weights) <= 0 and _tagged_indices(touchpoints):
        return linear_weights(touchpoints, SessionAttributionState())
    return normalize_weights(weights)


def _tagged_indices(touchpoints: Sequence[Touchpoint]) -> List[int]:
    return [index for index, touchpoint in enumerate(touchpoints) if touchpoint.is_tagged]
