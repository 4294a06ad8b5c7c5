"""SQLAlchemy repository adapter for AttriMet."""

import json
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from sqlalchemy import text
from sqlalchemy.orm import Session

from ..models import (
    AffiliatePerformance,
    AttributionResult,
    ChannelPerformance,
    EngagementMetrics,
    HistoricalContext,
    SessionAttributionState,
    Touchpoint,
)

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS attribution_touchpoints (
        session_id VARCHAR(255) NOT NULL,
        seq INTEGER NOT NULL,
        affiliate_id VARCHAR(255),
        touchpoint_type VARCHAR(100) NOT NULL,
        channel VARCHAR(100) NOT NULL,
        interaction_quality FLOAT NOT NULL DEFAULT 0.5,
        conversion_probability FLOAT NOT NULL DEFAULT 0.5,
        engagement TEXT,
        campaign_data TEXT,
        page_url TEXT,
        referrer TEXT,
        timestamp VARCHAR(40) NOT NULL,
        PRIMARY KEY (session_id, seq)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS attribution_states (
        session_id VARCHAR(255) PRIMARY KEY,
        state TEXT NOT NULL,
        finalized INTEGER NOT NULL DEFAULT 0,
        last_updated VARCHAR(40) NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS attribution_results (
        order_id VARCHAR(255) NOT NULL,
        session_id VARCHAR(255) NOT NULL,
        model_results TEXT NOT NULL,
        final_attribution TEXT NOT NULL,
        attribution_confidence FLOAT NOT NULL DEFAULT 0.5,
        advanced_entropy FLOAT NOT NULL DEFAULT 1.0,
        total_conversion_value FLOAT NOT NULL DEFAULT 0,
        created_at VARCHAR(40) NOT NULL,
        PRIMARY KEY (order_id, session_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS attribution_insights (
        affiliate_id VARCHAR(255),
        channel VARCHAR(100),
        total_conversions INTEGER NOT NULL DEFAULT 0,
        total_value FLOAT NOT NULL DEFAULT 0,
        avg_conversion_value FLOAT NOT NULL DEFAULT 0,
        touchpoint_count FLOAT NOT NULL DEFAULT 0,
        last_updated VARCHAR(40) NOT NULL
    )
    """,
)


class SQLAlchemyAttributionRepository:
    """Stores touchpoints, states and results in relational tables."""

    def __init__(self, db: Session):
        self.db = db

    def create_schema(self) -> None:
        for statement in SCHEMA_STATEMENTS:
            self.db.execute(text(statement))
        self.db.commit()

    def append_touchpoint(self, touchpoint: Touchpoint) -> None:
        self.db.execute(
            text(
                """
                INSERT INTO attribution_touchpoints (
                    session_id, seq, affiliate_id, touchpoint_type, channel,
                    interaction_quality, conversion_probability, engagement,
                    campaign_data, page_url, referrer, timestamp
                )
                SELECT :session_id, COALESCE(MAX(seq), 0) + 1, :affiliate_id, :touchpoint_type,
                       :channel, :interaction_quality, :conversion_probability, :engagement,
                       :campaign_data, :page_url, :referrer, :timestamp
                FROM attribution_touchpoints
                WHERE session_id = :session_id
                """
            ),
            {
                "session_id": touchpoint.session_id,
                "affiliate_id": touchpoint.affiliate_id,
                "touchpoint_type": touchpoint.type,
                "channel": touchpoint.channel,
                "interaction_quality": touchpoint.interaction_quality,
                "conversion_probability": touchpoint.conversion_probability,
                "engagement": json.dumps(
                    {
                        "time_spent": touchpoint.engagement.time_spent,
                        "pages_viewed": touchpoint.engagement.pages_viewed,
                        "interactions": touchpoint.engagement.interactions,
                    }
                ),
                "campaign_data": json.dumps(dict(touchpoint.campaign)),
                "page_url": touchpoint.page_url,
                "referrer": touchpoint.referrer,
                "timestamp": _isoformat(touchpoint.timestamp),
            },
        )
        self.db.commit()

    def fetch_touchpoints(self, session_id: str) -> Sequence[Touchpoint]:
        rows = self.db.execute(
            text(
                """
                SELECT session_id, affiliate_id, touchpoint_type, channel,
                       interaction_quality, conversion_probability, engagement,
                       campaign_data, page_url, referrer, timestamp
                FROM attribution_touchpoints
                WHERE session_id = :session_id
                ORDER BY timestamp ASC, seq ASC
                """
            ),
            {"session_id": session_id},
        ).fetchall()

        result: list[Touchpoint] = []
        for row in rows:
            engagement = _parse_json_object(row.engagement)
            result.append(
                Touchpoint(
                    session_id=row.session_id,
                    affiliate_id=row.affiliate_id,
                    timestamp=_parse_timestamp(row.timestamp),
                    interaction_quality=float(row.interaction_quality),
                    conversion_probability=float(row.conversion_probability),
                    channel=row.channel,
                    type=row.touchpoint_type,
                    engagement=EngagementMetrics(
                        time_spent=int(engagement.get("time_spent", 0)),
                        pages_viewed=int(engagement.get("pages_viewed", 1)),
                        interactions=int(engagement.get("interactions", 0)),
                    ),
                    campaign=_parse_json_object(row.campaign_data),
                    page_url=row.page_url or "",
                    referrer=row.referrer or "",
                )
            )
        return result

    def load_state(self, session_id: str) -> Optional[SessionAttributionState]:
        row = self.db.execute(
            text("SELECT state FROM attribution_states WHERE session_id = :session_id"),
            {"session_id": session_id},
        ).fetchone()
        if row is None:
            return None

        payload = _parse_json_object(row.state)
        if "affiliate_probabilities" not in payload:
            return None
        return SessionAttributionState(
            affiliate_probabilities={
                str(key): float(value) for key, value in payload["affiliate_probabilities"].items()
            },
            attribution_entropy=float(payload.get("attribution_entropy", 1.0)),
            conversion_likelihood=float(payload.get("conversion_likelihood", 0.5)),
            touchpoint_count=int(payload.get("touchpoint_count", 0)),
        )

    def save_state(self, session_id: str, state: SessionAttributionState) -> None:
        self.db.execute(
            text(
                """
                INSERT INTO attribution_states (session_id, state, finalized, last_updated)
                VALUES (:session_id, :state, 0, :last_updated)
                ON CONFLICT (session_id) DO UPDATE
                SET state = excluded.state, last_updated = excluded.last_updated
                """
            ),
            {
                "session_id": session_id,
                "state": json.dumps(
                    {
                        "affiliate_probabilities": dict(state.affiliate_probabilities),
                        "attribution_entropy": state.attribution_entropy,
                        "conversion_likelihood": state.conversion_likelihood,
                        "touchpoint_count": state.touchpoint_count,
                    }
                ),
                "last_updated": _isoformat(datetime.now(timezone.utc)),
            },
        )
        self.db.commit()

    def save_result(self, result: AttributionResult) -> None:
        self.db.execute(
            text(
                """
                INSERT INTO attribution_results (
                    order_id, session_id, model_results, final_attribution,
                    attribution_confidence, advanced_entropy, total_conversion_value, created_at
                )
                VALUES (
                    :order_id, :session_id, :model_results, :final_attribution,
                    :confidence, :entropy, :conversion_value, :created_at
                )
                ON CONFLICT (order_id, session_id) DO NOTHING
                """
            ),
            {
                "order_id": result.order_id,
                "session_id": result.session_id,
                "model_results": json.dumps(
                    {name: dict(values) for name, values in result.per_strategy_results.items()}
                ),
                "final_attribution": json.dumps(dict(result.final_attribution)),
                "confidence": result.confidence,
                "entropy": result.attribution_entropy,
                "conversion_value": result.conversion_value,
                "created_at": _isoformat(result.created_at),
            },
        )
        self.db.commit()

    def fetch_result(self, order_id: str, session_id: str) -> Optional[AttributionResult]:
        row = self.db.execute(
            text(
                """
                SELECT order_id, session_id, model_results, final_attribution,
                       attribution_confidence, advanced_entropy, total_conversion_value, created_at
                FROM attribution_results
                WHERE order_id = :order_id AND session_id = :session_id
                """
            ),
            {"order_id": order_id, "session_id": session_id},
        ).fetchone()
        if row is None:
            return None

        return AttributionResult(
            order_id=row.order_id,
            session_id=row.session_id,
            conversion_value=float(row.total_conversion_value),
            per_strategy_results={
                name: {str(key): float(value) for key, value in values.items()}
                for name, values in _parse_json_object(row.model_results).items()
            },
            final_attribution={
                str(key): float(value)
                for key, value in _parse_json_object(row.final_attribution).items()
            },
            confidence=float(row.attribution_confidence),
            attribution_entropy=float(row.advanced_entropy),
            created_at=_parse_timestamp(row.created_at),
        )

    def mark_finalized(self, session_id: str) -> None:
        self.db.execute(
            text(
                """
                INSERT INTO attribution_states (session_id, state, finalized, last_updated)
                VALUES (:session_id, '{}', 1, :last_updated)
                ON CONFLICT (session_id) DO UPDATE
                SET finalized = 1, last_updated = excluded.last_updated
                """
            ),
            {"session_id": session_id, "last_updated": _isoformat(datetime.now(timezone.utc))},
        )
        self.db.commit()

    def is_finalized(self, session_id: str) -> bool:
        row = self.db.execute(
            text("SELECT finalized FROM attribution_states WHERE session_id = :session_id"),
            {"session_id": session_id},
        ).fetchone()
        return bool(row and row.finalized)

    def fetch_historical_context(
        self,
        channels: Iterable[str],
        affiliate_ids: Iterable[str],
        since: datetime,
    ) -> HistoricalContext:
        channel_performance = {}
        for channel in sorted(set(channels)):
            if not channel:
                continue
            row = self.db.execute(
                text(
                    """
                    SELECT AVG(avg_conversion_value) AS avg_value,
                           AVG(touchpoint_count) AS avg_touchpoints,
                           COUNT(*) AS total_conversions
                    FROM attribution_insights
                    WHERE channel = :channel AND last_updated >= :since
                    """
                ),
                {"channel": channel, "since": _isoformat(since)},
            ).fetchone()
            channel_performance[channel] = ChannelPerformance(
                avg_value=float(row.avg_value or 0),
                avg_touchpoints=float(row.avg_touchpoints or 0),
                conversions=int(row.total_conversions or 0),
            )

        affiliate_performance = {}
        for affiliate_id in sorted(set(affiliate_ids)):
            if not affiliate_id:
                continue
            row = self.db.execute(
                text(
                    """
                    SELECT total_conversions, total_value, avg_conversion_value
                    FROM attribution_insights
                    WHERE affiliate_id = :affiliate_id
                    ORDER BY last_updated DESC
                    LIMIT 1
                    """
                ),
                {"affiliate_id": affiliate_id},
            ).fetchone()
            if row is None:
                continue
            affiliate_performance[affiliate_id] = AffiliatePerformance(
                total_conversions=int(row.total_conversions or 0),
                total_value=float(row.total_value or 0),
                avg_value=float(row.avg_conversion_value or 0),
            )

        return HistoricalContext(channels=channel_performance, affiliates=affiliate_performance)


def _isoformat(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_timestamp(raw) -> datetime:
    if isinstance(raw, datetime):
        value = raw
    else:
        value = datetime.fromisoformat(str(raw))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _parse_json_object(raw) -> dict:
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        value = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        return {}
    return value if isinstance(value, dict) else {}
