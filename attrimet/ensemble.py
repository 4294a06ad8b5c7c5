"""Ensemble combiner: runs every strategy and blends their credit."""

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .models import AttributionResult, SessionAttributionState, Touchpoint
from .strategies import STRATEGIES, StrategyContext, WeightFunction


def finalize(
    touchpoints: Sequence[Touchpoint],
    conversion_value: float,
    state: SessionAttributionState,
    blend_weights: Optional[Mapping[str, float]] = None,
    order_id: str = "",
    session_id: str = "",
    context: Optional[StrategyContext] = None,
    created_at: Optional[datetime] = None,
) -> AttributionResult:
    """
    Evaluate all strategies over a session snapshot and blend them.

    Blend weights are independent scalars: they are not normalized, so the
    blended total equals ``conversion_value * sum(blend_weights)`` whenever
    any touchpoint carries an affiliate.
    """
    context = context or StrategyContext()
    if blend_weights is None:
        blend_weights = context.config.blend_weights
    if not session_id and touchpoints:
        session_id = touchpoints[0].session_id
    created_at = created_at or datetime.now(timezone.utc)

    if not touchpoints:
        return AttributionResult(
            order_id=order_id,
            session_id=session_id,
            conversion_value=conversion_value,
            per_strategy_results={name: {} for name in STRATEGIES},
            final_attribution={},
            confidence=0.0,
            attribution_entropy=state.attribution_entropy,
            created_at=created_at,
        )

    per_strategy = {
        name: compute_model_attribution(touchpoints, conversion_value, weight_function, state, context)
        for name, weight_function in STRATEGIES.items()
    }

    return AttributionResult(
        order_id=order_id,
        session_id=session_id,
        conversion_value=conversion_value,
        per_strategy_results=per_strategy,
        final_attribution=blend_attribution(per_strategy, blend_weights),
        confidence=compute_confidence(per_strategy),
        attribution_entropy=state.attribution_entropy,
        created_at=created_at,
    )


def compute_model_attribution(
    touchpoints: Sequence[Touchpoint],
    conversion_value: float,
    weight_function: WeightFunction,
    state: SessionAttributionState,
    context: Optional[StrategyContext] = None,
) -> Dict[str, float]:
    """Credit each affiliate with ``conversion_value`` times its touchpoints' weights."""
    weights = weight_function(touchpoints, state, context)
    attribution: Dict[str, float] = {}
    for touchpoint, weight in zip(touchpoints, weights):
        if not touchpoint.is_tagged:
            continue
        attribution[touchpoint.affiliate_id] = (
            attribution.get(touchpoint.affiliate_id, 0.0) + conversion_value * weight
        )
    return attribution


def blend_attribution(
    per_strategy: Mapping[str, Mapping[str, float]],
    blend_weights: Mapping[str, float],
) -> Dict[str, float]:
    final: Dict[str, float] = {}
    for name, attribution in per_strategy.items():
        model_weight = blend_weights.get(name, 0.0)
        for affiliate_id, value in attribution.items():
            final[affiliate_id] = final.get(affiliate_id, 0.0) + value * model_weight
    return final


def compute_confidence(per_strategy: Mapping[str, Mapping[str, float]]) -> float:
    """
    Agreement across strategies, in [0, 1].

    An affiliate qualifies when at least two strategies credit it with a
    non-zero value. Its variance is then taken over every strategy's value
    for it, zero credits included, so strategies that pass it over count as
    disagreement. Confidence is ``1 - mean_variance / 100`` clamped to
    [0, 1], and 1.0 when no affiliate qualifies.
    """
    if not per_strategy:
        return 0.0

    values_by_affiliate: Dict[str, List[float]] = {}
    for attribution in per_strategy.values():
        for affiliate_id, value in attribution.items():
            values_by_affiliate.setdefault(affiliate_id, []).append(value)

    variances = [
        _population_variance(values)
        for values in values_by_affiliate.values()
        if sum(1 for value in values if value != 0) > 1
    ]
    if not variances:
        return 1.0

    avg_variance = sum(variances) / len(variances)
    return max(0.0, min(1.0, 1 - avg_variance / 100))


def _population_variance(values: Iterable[float]) -> float:
    values = list(values)
    mean = sum(values) / len(values)
    return sum((value - mean) ** 2 for value in values) / len(values)
