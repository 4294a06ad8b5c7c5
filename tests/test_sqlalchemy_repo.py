from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session

from attrimet.adapters.sqlalchemy_repo import SQLAlchemyAttributionRepository
from attrimet.config import AttributionConfig
from attrimet.emitter import SynchronousEmitter
from attrimet.exceptions import SessionFinalizedError
from attrimet.models import EngagementMetrics, SessionAttributionState, Touchpoint
from attrimet.service import AttributionService

T0 = datetime(2026, 1, 6, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def repo():
    engine = create_engine("sqlite://")
    with Session(engine) as db:
        repository = SQLAlchemyAttributionRepository(db)
        repository.create_schema()
        yield repository
    engine.dispose()


def _tp(affiliate_id, offset_hours, channel="email"):
    return Touchpoint(
        session_id="s1",
        affiliate_id=affiliate_id,
        timestamp=T0 + timedelta(hours=offset_hours),
        interaction_quality=0.7,
        conversion_probability=0.4,
        channel=channel,
        type="product_view",
        engagement=EngagementMetrics(time_spent=90, pages_viewed=3, interactions=2),
        campaign={"utm_source": "newsletter"},
        page_url="https://shop.example/p/1",
    )


def _insert_insight(repo, last_updated, channel=None, affiliate_id=None, conversions=1, total=0.0, avg=0.0, touchpoints=0):
    repo.db.execute(
        text(
            """
            INSERT INTO attribution_insights (
                affiliate_id, channel, total_conversions, total_value,
                avg_conversion_value, touchpoint_count, last_updated
            )
            VALUES (:affiliate_id, :channel, :conversions, :total, :avg, :touchpoints, :last_updated)
            """
        ),
        {
            "affiliate_id": affiliate_id,
            "channel": channel,
            "conversions": conversions,
            "total": total,
            "avg": avg,
            "touchpoints": touchpoints,
            "last_updated": last_updated.isoformat(timespec="microseconds"),
        },
    )
    repo.db.commit()


def test_touchpoints_round_trip_in_timestamp_order(repo):
    repo.append_touchpoint(_tp("B", 2))
    repo.append_touchpoint(_tp(None, 1, channel="direct"))
    repo.append_touchpoint(_tp("A", 0))

    touchpoints = repo.fetch_touchpoints("s1")

    assert [touchpoint.affiliate_id for touchpoint in touchpoints] == ["A", None, "B"]
    assert touchpoints[0] == _tp("A", 0)
    assert touchpoints[0].timestamp.tzinfo is not None
    assert repo.fetch_touchpoints("other") == []


def test_state_round_trip_and_update(repo):
    assert repo.load_state("s1") is None

    repo.save_state("s1", SessionAttributionState({"A": 0.25}, 0.5, 0.55, 1))
    repo.save_state("s1", SessionAttributionState({"A": 0.8, "B": 0.2}, 0.72, 0.6, 3))

    assert repo.load_state("s1") == SessionAttributionState({"A": 0.8, "B": 0.2}, 0.72, 0.6, 3)


def test_finalized_flag(repo):
    assert not repo.is_finalized("s1")

    repo.mark_finalized("s1")

    assert repo.is_finalized("s1")
    assert repo.load_state("s1") is None


def test_finalized_flag_keeps_existing_state(repo):
    state = SessionAttributionState({"A": 0.25}, 0.5, 0.55, 1)
    repo.save_state("s1", state)

    repo.mark_finalized("s1")

    assert repo.is_finalized("s1")
    assert repo.load_state("s1") == state


def test_historical_context_respects_window(repo):
    since = T0 - timedelta(days=90)
    _insert_insight(repo, T0 - timedelta(days=5), channel="search", avg=300.0, touchpoints=3)
    _insert_insight(repo, T0 - timedelta(days=10), channel="search", avg=100.0, touchpoints=5)
    _insert_insight(repo, T0 - timedelta(days=200), channel="search", avg=9000.0, touchpoints=1)
    _insert_insight(repo, T0 - timedelta(days=30), affiliate_id="A", conversions=4, total=400.0, avg=100.0)
    _insert_insight(repo, T0 - timedelta(days=2), affiliate_id="A", conversions=6, total=1800.0, avg=300.0)

    history = repo.fetch_historical_context({"search", "email"}, {"A", "B"}, since)

    assert history.channels["search"].avg_value == pytest.approx(200.0)
    assert history.channels["search"].avg_touchpoints == pytest.approx(4.0)
    assert history.channels["search"].conversions == 2
    assert history.channels["email"].conversions == 0
    assert history.affiliates["A"].total_conversions == 6
    assert history.affiliates["A"].avg_value == pytest.approx(300.0)
    assert "B" not in history.affiliates


def test_service_over_sqlalchemy(repo):
    emitted = []
    service = AttributionService(repo, config=AttributionConfig(), emitter=SynchronousEmitter(emitted.append))
    service.record_touchpoint("s1", affiliate_id="A", quality=0.6, timestamp=T0 - timedelta(hours=5))
    service.record_touchpoint("s1", affiliate_id="B", quality=0.9, timestamp=T0 - timedelta(hours=1))
    service.record_touchpoint("s1", affiliate_id=None, timestamp=T0 - timedelta(hours=3))

    result = service.finalize("s1", "o1", 100.0, conversion_time=T0)
    stored = repo.fetch_result("o1", "s1")

    assert stored.final_attribution == pytest.approx(dict(result.final_attribution))
    assert stored.per_strategy_results["last_click"] == {"A": 0.0, "B": pytest.approx(100.0)}
    assert stored.confidence == pytest.approx(result.confidence)
    assert stored.created_at == result.created_at
    assert service.get_state("s1").touchpoint_count == 3
    assert service.finalize("s1", "o1", 100.0, conversion_time=T0).final_attribution == stored.final_attribution
    assert len(emitted) == 1

    with pytest.raises(SessionFinalizedError):
        service.record_touchpoint("s1", affiliate_id="C", timestamp=T0)
