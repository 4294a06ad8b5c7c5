import threading
from datetime import datetime, timedelta, timezone

import pytest

from attrimet.adapters.memory import InMemoryAttributionRepository
from attrimet.config import AttributionConfig
from attrimet.emitter import SynchronousEmitter
from attrimet.exceptions import SessionFinalizedError
from attrimet.models import AffiliatePerformance, HistoricalContext
from attrimet.service import AttributionService
from attrimet.signals import SignalContext, predict_conversion_probability
from attrimet.strategies import STRATEGIES

T0 = datetime(2026, 1, 6, 10, 0, tzinfo=timezone.utc)


class FakeRepo(InMemoryAttributionRepository):
    def __init__(self, history=None):
        super().__init__(history=history)
        self.last_history_request = None

    def fetch_historical_context(self, channels, affiliate_ids, since):
        self.last_history_request = (set(channels), set(affiliate_ids), since)
        return super().fetch_historical_context(channels, affiliate_ids, since)


def _service(repo=None, sink=None, **config):
    emitted = [] if sink is None else sink
    service = AttributionService(
        repo or FakeRepo(),
        config=AttributionConfig(**config),
        emitter=SynchronousEmitter(emitted.append),
    )
    return service, emitted


def test_finalize_empty_session_returns_empty_result():
    service, emitted = _service()

    result = service.finalize("s1", "o1", 100.0, conversion_time=T0)

    assert result.final_attribution == {}
    assert result.confidence == 0.0
    assert result.per_strategy_results == {name: {} for name in STRATEGIES}
    assert emitted == [result]


def test_finalize_attributes_single_affiliate():
    service, emitted = _service()
    service.record_touchpoint("s1", affiliate_id="X", quality=0.8, timestamp=T0 - timedelta(hours=3))
    service.record_touchpoint("s1", affiliate_id="X", quality=0.6, timestamp=T0 - timedelta(hours=1))

    result = service.finalize("s1", "o1", 100.0, conversion_time=T0)

    assert result.order_id == "o1"
    assert result.session_id == "s1"
    assert result.confidence == pytest.approx(1.0)
    assert result.final_attribution["X"] == pytest.approx(160.0)
    assert service.get_result("o1", "s1") == result


def test_finalize_requests_history_for_trailing_window():
    repo = FakeRepo(
        history=HistoricalContext(
            affiliates={"A": AffiliatePerformance(total_conversions=9, total_value=5400.0, avg_value=600.0)}
        )
    )
    service, _ = _service(repo=repo)
    service.record_touchpoint("s1", affiliate_id="A", channel="Search", timestamp=T0 - timedelta(hours=2))
    service.record_touchpoint("s1", channel="direct", timestamp=T0 - timedelta(hours=1))

    service.finalize("s1", "o1", 80.0, conversion_time=T0)

    channels, affiliates, since = repo.last_history_request
    assert channels == {"search", "direct"}
    assert affiliates == {"A"}
    assert since == T0 - timedelta(days=90)


def test_history_window_is_configurable():
    repo = FakeRepo()
    service, _ = _service(repo=repo, history_window_days=30)

    service.finalize("s1", "o1", 10.0, conversion_time=T0)

    assert repo.last_history_request[2] == T0 - timedelta(days=30)


def test_repeat_finalize_returns_stored_result_without_emitting():
    service, emitted = _service()
    service.record_touchpoint("s1", affiliate_id="A", timestamp=T0 - timedelta(hours=1))

    first = service.finalize("s1", "o1", 100.0, conversion_time=T0)
    second = service.finalize("s1", "o1", 250.0, conversion_time=T0)

    assert second is first
    assert len(emitted) == 1


def test_touchpoint_after_finalize_is_rejected():
    service, _ = _service()
    service.record_touchpoint("s1", affiliate_id="A", timestamp=T0 - timedelta(hours=1))
    service.finalize("s1", "o1", 100.0, conversion_time=T0)

    with pytest.raises(SessionFinalizedError) as excinfo:
        service.record_touchpoint("s1", affiliate_id="B", timestamp=T0 + timedelta(hours=1))

    assert excinfo.value.to_dict()["details"] == {"session_id": "s1"}
    assert len(service.repo.fetch_touchpoints("s1")) == 1


def test_sink_failure_does_not_break_finalize():
    def broken_sink(result):
        raise RuntimeError("downstream unavailable")

    service = AttributionService(
        FakeRepo(), config=AttributionConfig(), emitter=SynchronousEmitter(broken_sink)
    )
    service.record_touchpoint("s1", affiliate_id="A", timestamp=T0 - timedelta(hours=1))

    result = service.finalize("s1", "o1", 40.0, conversion_time=T0)

    assert result.final_attribution["A"] == pytest.approx(64.0)


def test_concurrent_touchpoints_for_one_session_are_all_counted():
    service, _ = _service()

    def record(worker):
        for step in range(25):
            service.record_touchpoint(
                "s1",
                affiliate_id=f"aff-{worker}",
                timestamp=T0 + timedelta(minutes=worker * 100 + step),
            )

    threads = [threading.Thread(target=record, args=(worker,)) for worker in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(service.repo.fetch_touchpoints("s1")) == 100
    assert service.get_state("s1").touchpoint_count == 100


def test_sessions_are_independent():
    service, _ = _service()
    service.record_touchpoint("s1", affiliate_id="A", timestamp=T0 - timedelta(hours=1))
    service.record_touchpoint("s2", affiliate_id="B", timestamp=T0 - timedelta(hours=1))

    service.finalize("s1", "o1", 100.0, conversion_time=T0)
    service.record_touchpoint("s2", affiliate_id="C", timestamp=T0)

    assert service.get_state("s2").touchpoint_count == 2
    assert service.get_state("unknown").touchpoint_count == 0


def test_form_submission_is_scored_and_recorded():
    service, _ = _service()
    form = {"name": "Jane Doe", "email": "jane@acme.io", "phone": "555 0100", "message": "pricing please"}

    touchpoint = service.record_form_submission("s1", form, affiliate_id="A", timestamp=T0)

    assert touchpoint.type == "form_submission"
    assert touchpoint.interaction_quality == pytest.approx(0.9)
    assert touchpoint.conversion_probability == pytest.approx(
        predict_conversion_probability(form, SignalContext(submitted_at=T0))
    )
    assert service.get_state("s1").touchpoint_count == 1


def test_session_locks_stay_bounded():
    service, _ = _service(session_lock_stripes=8)

    for index in range(500):
        session_id = f"s{index}"
        service.record_touchpoint(session_id, affiliate_id="A", timestamp=T0 - timedelta(hours=1))
        service.finalize(session_id, f"o{index}", 10.0, conversion_time=T0)

    assert len(service._locks) == 8
    assert service._session_lock("s42") is service._session_lock("s42")
    with pytest.raises(SessionFinalizedError):
        service.record_touchpoint("s42", affiliate_id="B", timestamp=T0)
