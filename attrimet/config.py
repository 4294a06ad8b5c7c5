"""
Configuration for the attribution engine.

Every tunable the strategies and the ensemble read lives here and is passed
explicitly at call time. Values load from ``ATTRIMET_*`` environment
variables or a ``.env`` file; mapping and list fields take JSON.
"""
from functools import lru_cache
from typing import Dict, List, Tuple

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

STRATEGY_NAMES = (
    "last_click",
    "first_click",
    "linear",
    "time_decay",
    "position_based",
    "data_driven",
    "advanced_superposition",
)

DEFAULT_BLEND_WEIGHTS = {
    "last_click": 0.15,
    "first_click": 0.10,
    "linear": 0.20,
    "time_decay": 0.25,
    "position_based": 0.15,
    "data_driven": 0.35,
    "advanced_superposition": 0.40,
}

DEFAULT_TYPE_FACTORS = {
    "purchase_intent": 1.5,
    "high_engagement": 1.4,
    "form_submission": 1.3,
    "content_download": 1.2,
    "product_view": 1.1,
    "click": 1.0,
    "social_engagement": 0.8,
    "email_open": 0.7,
    "impression": 0.6,
}

# (minimum average conversion value, factor), highest tier first
DEFAULT_CHANNEL_VALUE_TIERS = [
    (500.0, 1.8),
    (250.0, 1.5),
    (100.0, 1.2),
    (50.0, 1.0),
    (20.0, 0.8),
    (0.0, 0.6),
]

DEFAULT_AFFILIATE_VALUE_TIERS = [
    (500.0, 1.5),
    (250.0, 1.3),
    (100.0, 1.1),
    (50.0, 1.0),
    (20.0, 0.8),
    (0.0, 0.6),
]


class AttributionConfig(BaseSettings):
    """Blend weights, factor tables and thresholds."""

    model_config = SettingsConfigDict(
        env_prefix="ATTRIMET_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    blend_weights: Dict[str, float] = dict(DEFAULT_BLEND_WEIGHTS)

    # Time decay: weight = rate ** days_before_conversion
    time_decay_rate: float = 0.7

    # Data-driven factors
    recency_half_life_hours: float = 168.0
    recency_floor: float = 0.1
    type_factors: Dict[str, float] = dict(DEFAULT_TYPE_FACTORS)
    default_type_factor: float = 1.0
    channel_value_tiers: List[Tuple[float, float]] = list(DEFAULT_CHANNEL_VALUE_TIERS)
    affiliate_value_tiers: List[Tuple[float, float]] = list(DEFAULT_AFFILIATE_VALUE_TIERS)
    min_channel_conversions: int = 10
    min_affiliate_conversions: int = 5
    min_weight_floor: float = 0.01
    long_journey_hours: float = 720.0
    key_moment_quality: float = 0.8

    # Historical context lookback used by repositories
    history_window_days: int = 90

    # Result handoff
    emitter_max_pending: int = 1000
    emitter_workers: int = 1

    # Per-session serialization in the service
    session_lock_stripes: int = 64

    log_level: str = "INFO"

    @field_validator("blend_weights")
    @classmethod
    def _check_blend_weights(cls, value: Dict[str, float]) -> Dict[str, float]:
        unknown = sorted(set(value) - set(STRATEGY_NAMES))
        if unknown:
            raise ValueError(f"unknown strategies in blend_weights: {', '.join(unknown)}")
        negative = sorted(name for name, weight in value.items() if weight < 0)
        if negative:
            raise ValueError(f"blend weights must be non-negative: {', '.join(negative)}")
        return value

    @field_validator("channel_value_tiers", "affiliate_value_tiers")
    @classmethod
    def _sort_tiers(cls, value: List[Tuple[float, float]]) -> List[Tuple[float, float]]:
        return sorted(value, key=lambda tier: tier[0], reverse=True)

    @field_validator("time_decay_rate")
    @classmethod
    def _check_decay_rate(cls, value: float) -> float:
        if not 0 < value <= 1:
            raise ValueError("time_decay_rate must be in (0, 1]")
        return value


def load_config(**overrides) -> AttributionConfig:
    """Build a config, translating validation failures into ConfigurationError."""
    try:
        return AttributionConfig(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(
            "Invalid attribution configuration",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


@lru_cache()
def get_config() -> AttributionConfig:
    """Get cached config instance"""
    return load_config()
