from datetime import datetime, timezone

import pytest

from attrimet.signals import (
    SIGNAL_WEIGHTS,
    FormHistory,
    SignalContext,
    behaviour_score,
    completion_score,
    conversion_signals,
    email_domain_score,
    historical_score,
    intent_score,
    is_quality_response,
    prediction_confidence,
    predict_conversion_probability,
    score_interaction_quality,
    temporal_score,
)

TUESDAY_MORNING = datetime(2026, 1, 6, 10, 30, tzinfo=timezone.utc)
SATURDAY_NIGHT = datetime(2026, 1, 3, 22, 0, tzinfo=timezone.utc)


def test_interaction_quality():
    assert score_interaction_quality({}) == 0.5
    form = {"email": "jane@acme.io", "phone": "555 0100", "name": "Jane Doe"}
    assert score_interaction_quality(form) == pytest.approx(0.9)
    assert score_interaction_quality({"email": "not-an-email", "name": "Jane"}) == 0.5


def test_intent_score_keywords_and_boosts():
    assert intent_score({"message": "please subscribe me"}) == pytest.approx(0.18)
    assert intent_score({"message": "download the guide"}) == pytest.approx(0.49)
    assert intent_score({"message": "need pricing asap"}) == pytest.approx(0.85 * 1.15)
    form = {"message": "book a demo", "company": "Acme", "phone": "1", "budget": "10k", "timeline": "Q3"}
    assert intent_score(form) == pytest.approx(0.82 * 1.2)
    assert intent_score({"message": "hello"}) == 0.0


def test_email_domain_score():
    assert email_domain_score({}) == 0.30
    assert email_domain_score({"email": "not-an-email"}) == 0.05
    assert email_domain_score({"email": "x@gmail.com"}) == 0.30
    assert email_domain_score({"email": "x@tempmail.org"}) == 0.02
    assert email_domain_score({"email": "info@acme.io"}) == 0.45
    assert email_domain_score({"email": "jane@acme.io"}) == pytest.approx(0.70)
    assert email_domain_score({"email": "jane@acme.io", "company": "Acme Inc"}) == pytest.approx(0.805)


def test_email_domain_reputation_and_premium_tld():
    verified = SignalContext(verified_domains=frozenset({"stanford.edu"}))
    spam = SignalContext(spam_domains=frozenset({"shady.biz"}))

    assert email_domain_score({"email": "ann@stanford.edu"}) == pytest.approx(0.805)
    assert email_domain_score({"email": "ann@stanford.edu"}, verified) == pytest.approx(0.966)
    assert email_domain_score({"email": "bob@shady.biz"}, spam) == pytest.approx(0.35)


def test_completion_score():
    assert completion_score({}) == 0.0
    form = {"company": "Acme Corporation", "note": "test"}
    assert completion_score(form) == pytest.approx(0.227)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("Hello there", True),
        ("asdf", False),
        ("aaaa", False),
        ("123456789", False),
        ("<script>alert(1)</script>", False),
        ("x", False),
    ],
)
def test_is_quality_response(value, expected):
    assert is_quality_response(value) is expected


def test_behaviour_score():
    assert behaviour_score({}) == 0.5

    engaged = SignalContext(
        referrer="https://www.google.com/search?q=widgets",
        pages_visited=6,
        session_duration=400,
        utm_campaign="spring",
        returning_visitor=True,
    )
    assert behaviour_score({}, engaged) == 1.0

    internal = SignalContext(referrer="https://shop.example/pricing", host="shop.example", pages_visited=3)
    assert behaviour_score({}, internal) == pytest.approx(0.75)
    assert behaviour_score({"pages_visited": "12"}, internal) == pytest.approx(0.95)


def test_historical_score():
    assert historical_score({}, SignalContext(form_history=FormHistory(10, 5))) == 0.5

    established = SignalContext(form_history=FormHistory(200, 50), industry_rate=0.4)
    assert historical_score({}, established) == pytest.approx(0.25)
    assert historical_score({"industry": "retail"}, established) == pytest.approx(0.295)

    young = SignalContext(form_history=FormHistory(50, 10))
    assert historical_score({}, young) == pytest.approx(0.2 * 0.5 + (11 / 52) * 0.5)


def test_temporal_score():
    assert temporal_score(TUESDAY_MORNING) == 1.0
    assert temporal_score(SATURDAY_NIGHT) == pytest.approx(0.45)
    assert temporal_score(datetime(2026, 1, 26, 8, 0, tzinfo=timezone.utc)) == pytest.approx(0.9)


def test_prediction_confidence():
    assert prediction_confidence({}) == 0.70
    assert prediction_confidence({"email": "a@b.io", "company": "B"}) == 0.85
    assert prediction_confidence({"email": "a@b.io", "company": "B", "phone": "1", "industry": "saas"}) == 1.0


def test_conversion_probability_is_bounded_and_ranks_forms():
    weak = predict_conversion_probability(
        {"message": "newsletter"}, SignalContext(submitted_at=SATURDAY_NIGHT)
    )
    strong = predict_conversion_probability(
        {
            "name": "Jane Doe",
            "email": "jane@acme.io",
            "company": "Acme",
            "phone": "555 0100",
            "industry": "manufacturing",
            "message": "Requesting a quote for an enterprise contract, asap",
        },
        SignalContext(
            submitted_at=TUESDAY_MORNING,
            referrer="https://www.google.com/",
            pages_visited=8,
            session_duration=700,
            returning_visitor=True,
        ),
    )

    assert 0.01 <= weak < strong <= 0.95


def test_conversion_signals_cover_every_weight():
    signals = conversion_signals({"email": "a@b.io"}, SignalContext(submitted_at=TUESDAY_MORNING))

    assert set(signals) == set(SIGNAL_WEIGHTS)
    assert all(0.0 <= score <= 1.0 for score in signals.values())
