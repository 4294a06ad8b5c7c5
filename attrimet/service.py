"""Application service orchestrating the recorder, repositories and pure attribution."""

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, List, Mapping, Optional, Union

from .config import AttributionConfig, get_config
from .ensemble import finalize as combine
from .exceptions import SessionFinalizedError
from .logger import log
from .models import AttributionResult, EngagementMetrics, SessionAttributionState, Touchpoint
from .ports import AttributionRepository, Emitter
from .recorder import TouchpointRecorder, as_utc
from .signals import SignalContext, predict_conversion_probability, score_interaction_quality
from .state import initial_state
from .strategies import StrategyContext


class AttributionService:
    """Facade exposing touchpoint ingestion and conversion finalization."""

    def __init__(
        self,
        repo: AttributionRepository,
        config: Optional[AttributionConfig] = None,
        emitter: Optional[Emitter] = None,
    ):
        self.repo = repo
        self.config = config or get_config()
        self.emitter = emitter
        self.recorder = TouchpointRecorder(repo)
        # sessions hash onto a fixed set of locks
        self._locks: List[threading.Lock] = [
            threading.Lock() for _ in range(max(self.config.session_lock_stripes, 1))
        ]

    def record_touchpoint(
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
        with self._session_lock(session_id):
            if self.repo.is_finalized(session_id):
                log.warning(f"Rejected touchpoint for finalized session {session_id}")
                raise SessionFinalizedError(session_id)

            return self.recorder.record(
                session_id,
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

    def record_form_submission(
        self,
        session_id: str,
        form_data: Mapping[str, Any],
        affiliate_id: Optional[Union[str, int]] = None,
        signal_context: Optional[SignalContext] = None,
        channel: Optional[str] = None,
        timestamp: Optional[Union[datetime, str]] = None,
        engagement: Optional[Union[EngagementMetrics, Mapping[str, Any]]] = None,
        campaign: Optional[Mapping[str, Any]] = None,
        page_url: str = "",
    ) -> Touchpoint:
        """Score a submitted form and record it as a ``form_submission`` touchpoint."""
        timestamp = as_utc(timestamp)
        signal_context = signal_context or SignalContext(submitted_at=timestamp)
        quality = score_interaction_quality(form_data)
        probability = predict_conversion_probability(form_data, signal_context)
        log.debug(f"Form on session {session_id} scored quality {quality:.2f}, probability {probability:.2f}")

        return self.record_touchpoint(
            session_id,
            affiliate_id=affiliate_id,
            quality=quality,
            conversion_probability=probability,
            channel=channel,
            type="form_submission",
            timestamp=timestamp,
            engagement=engagement,
            campaign=campaign,
            page_url=page_url,
            referrer=signal_context.referrer,
        )

    def finalize(
        self,
        session_id: str,
        order_id: str,
        conversion_value: float,
        conversion_time: Optional[datetime] = None,
    ) -> AttributionResult:
        """
        Attribute a conversion across the session's touchpoints.

        Closes the session: later touchpoints are rejected. Finalizing the
        same (order, session) again returns the stored result.
        """
        with self._session_lock(session_id):
            existing = self.repo.fetch_result(order_id, session_id)
            if existing is not None:
                log.info(f"Order {order_id} session {session_id} already attributed")
                return existing

            touchpoints = list(self.repo.fetch_touchpoints(session_id))
            state = self.repo.load_state(session_id) or initial_state()
            conversion_time = as_utc(conversion_time)
            history = self.repo.fetch_historical_context(
                channels={touchpoint.channel for touchpoint in touchpoints},
                affiliate_ids={touchpoint.affiliate_id for touchpoint in touchpoints if touchpoint.is_tagged},
                since=conversion_time - timedelta(days=self.config.history_window_days),
            )

            result = combine(
                touchpoints,
                float(conversion_value),
                state,
                blend_weights=self.config.blend_weights,
                order_id=order_id,
                session_id=session_id,
                context=StrategyContext(conversion_time=conversion_time, config=self.config, history=history),
                created_at=datetime.now(timezone.utc),
            )

            self.repo.save_result(result)
            self.repo.mark_finalized(session_id)

        if result.is_empty:
            log.info(f"Order {order_id} session {session_id} has no attributable touchpoints")
        else:
            log.info(
                f"Attributed order {order_id} ({conversion_value}) across "
                f"{len(result.final_attribution)} affiliates, confidence {result.confidence:.2f}"
            )

        if self.emitter is not None:
            self.emitter.emit(result)
        return result

    def get_result(self, order_id: str, session_id: str) -> Optional[AttributionResult]:
        return self.repo.fetch_result(order_id, session_id)

    def get_state(self, session_id: str) -> SessionAttributionState:
        return self.repo.load_state(session_id) or initial_state()

    def _session_lock(self, session_id: str) -> threading.Lock:
        return self._locks[hash(session_id) % len(self._locks)]
