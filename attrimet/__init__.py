"""AttriMet - multi-touch attribution for affiliate conversions."""

from .config import AttributionConfig, load_config
from .emitter import ResultEmitter, SynchronousEmitter
from .ensemble import compute_confidence, finalize
from .models import AttributionResult, SessionAttributionState, Touchpoint
from .recorder import TouchpointRecorder, build_touchpoint
from .service import AttributionService
from .state import attribution_entropy, update_state
from .strategies import STRATEGIES, StrategyContext

__all__ = [
    "AttributionService",
    "AttributionConfig",
    "load_config",
    "Touchpoint",
    "SessionAttributionState",
    "AttributionResult",
    "TouchpointRecorder",
    "build_touchpoint",
    "update_state",
    "attribution_entropy",
    "STRATEGIES",
    "StrategyContext",
    "finalize",
    "compute_confidence",
    "ResultEmitter",
    "SynchronousEmitter",
]

__version__ = "0.1.0"
