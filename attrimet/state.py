"""Session state tracking: the interference update over affiliate probabilities."""

from math import cos, log2, pi, sqrt
from typing import Dict, Mapping, Optional

from .models import SessionAttributionState, Touchpoint

# Entropy reported before any affiliate has been observed
EMPTY_ENTROPY = 1.0


def initial_state() -> SessionAttributionState:
    """Return the state a session starts from before its first touchpoint."""
    return SessionAttributionState()


def update_state(
    state: Optional[SessionAttributionState],
    touchpoint: Touchpoint,
) -> SessionAttributionState:
    """
    Apply one touchpoint to a session state and return the new state.

    The update is order dependent: applying the same touchpoints in a
    different order yields a different distribution.
    """
    if state is None:
        state = initial_state()

    probabilities: Dict[str, float] = dict(state.affiliate_probabilities)
    quality = touchpoint.interaction_quality
    conversion_probability = touchpoint.conversion_probability

    if touchpoint.affiliate_id:
        current = probabilities.get(touchpoint.affiliate_id, 0.0)
        probabilities[touchpoint.affiliate_id] = interference(current, quality, conversion_probability)
        probabilities = normalize_probabilities(probabilities)

    return SessionAttributionState(
        affiliate_probabilities=probabilities,
        attribution_entropy=attribution_entropy(probabilities),
        conversion_likelihood=min(state.conversion_likelihood + conversion_probability * 0.1, 1.0),
        touchpoint_count=state.touchpoint_count + 1,
    )


def interference(current_probability: float, quality: float, conversion_probability: float) -> float:
    """Combine an existing probability with a new observation as amplitudes."""
    amplitude = sqrt(max(current_probability, 0.0))
    new_amplitude = sqrt(max(conversion_probability * quality, 0.0))
    combined = amplitude + new_amplitude * cos(phase_difference(quality))
    return min(combined**2, 1.0)


def phase_difference(quality: float) -> float:
    # zero at quality 0.5; the new amplitude fades out towards either extreme
    return (quality - 0.5) * pi


def normalize_probabilities(probabilities: Mapping[str, float]) -> Dict[str, float]:
    """Rescale so the values sum to at most 1."""
    total = sum(probabilities.values())
    if total > 1.0:
        return {affiliate_id: value / total for affiliate_id, value in probabilities.items()}
    return dict(probabilities)


def attribution_entropy(probabilities: Mapping[str, float]) -> float:
    """Shannon entropy (base 2); 1.0 for an empty distribution."""
    if not probabilities:
        return EMPTY_ENTROPY

    entropy = 0.0
    for value in probabilities.values():
        if value > 0:
            entropy -= value * log2(value)
    return entropy
