"""
Interaction signals derived from a submitted form.

These heuristics produce the ``interaction_quality`` and
``conversion_probability`` inputs of a touchpoint. Request context (referrer,
host, visit counters, submission time, historical form statistics) is passed
in explicitly through :class:`SignalContext`.
"""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from difflib import SequenceMatcher
from typing import Any, Dict, FrozenSet, Mapping, Optional

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

HIGH_INTENT = {
    "purchase": 0.95,
    "buy now": 0.93,
    "quote": 0.90,
    "contract": 0.88,
    "pricing": 0.85,
    "proposal": 0.83,
    "demo": 0.82,
    "consultation": 0.80,
    "implementation": 0.78,
    "enterprise": 0.77,
    "trial": 0.75,
}

MEDIUM_INTENT = {
    "webinar": 0.55,
    "case study": 0.52,
    "whitepaper": 0.50,
    "guide": 0.49,
    "learn more": 0.48,
    "download": 0.47,
    "ebook": 0.46,
    "information": 0.45,
}

LOW_INTENT = {
    "subscribe": 0.18,
    "newsletter": 0.15,
    "updates": 0.14,
    "blog": 0.12,
    "follow": 0.10,
}

HIGH_VALUE_FIELDS = ("company", "job_title", "phone", "budget", "timeline", "team_size", "industry")
URGENCY_KEYWORDS = ("urgent", "asap", "immediately", "soon", "this week", "this month")

CONSUMER_PROVIDERS = {
    "gmail.com": 0.30,
    "yahoo.com": 0.25,
    "hotmail.com": 0.28,
    "outlook.com": 0.32,
    "aol.com": 0.22,
    "icloud.com": 0.29,
    "live.com": 0.27,
    "mail.com": 0.24,
    "protonmail.com": 0.35,
    "gmx.com": 0.23,
    "yandex.com": 0.26,
    "zoho.com": 0.33,
}

DISPOSABLE_PATTERNS = (
    "temp", "disposable", "trash", "guerrilla", "10minute",
    "throwaway", "fake", "spam", "mailinator", "tempmail",
)

ROLE_PREFIXES = ("info@", "admin@", "support@", "sales@", "noreply@", "contact@", "help@")

PREMIUM_TLDS = (
    (".edu", 1.15),
    (".gov", 1.20),
    (".mil", 1.18),
    (".ac.uk", 1.12),
    (".edu.au", 1.12),
    (".org", 1.05),
)

KEY_BUSINESS_FIELDS = ("company", "job_title", "phone", "industry", "budget", "timeline")
CONFIDENCE_INDICATORS = ("email", "company", "phone", "industry", "pages_visited", "session_duration")

SPAM_RESPONSE_PATTERNS = (
    re.compile(r"^(test|asdf|qwerty|xxx|none|n/a|na)$", re.IGNORECASE),
    re.compile(r"^(.)\1{3,}$"),
    re.compile(r"^\d{8,}$"),
    re.compile(r"<script|javascript:", re.IGNORECASE),
    re.compile(r"\b(viagra|cialis|casino|lottery)\b", re.IGNORECASE),
)

SEARCH_REFERRER = re.compile(r"(google|bing|yahoo|duckduckgo)", re.IGNORECASE)
SOCIAL_REFERRER = re.compile(r"(facebook|twitter|linkedin|instagram)", re.IGNORECASE)

# signal name -> weight in the conversion probability
SIGNAL_WEIGHTS = {
    "intent": 0.30,
    "email_quality": 0.20,
    "completion": 0.15,
    "behaviour": 0.15,
    "historical": 0.10,
    "temporal": 0.10,
}

BASE_PROBABILITY = 0.10


@dataclass(frozen=True)
class FormHistory:
    """Trailing submission statistics for the form being scored."""

    total_submissions: int = 0
    conversions: int = 0


@dataclass(frozen=True)
class SignalContext:
    """Request and historical context for a form submission."""

    submitted_at: Optional[datetime] = None
    referrer: str = ""
    host: str = ""
    pages_visited: Optional[int] = None
    session_duration: Optional[int] = None
    utm_campaign: Optional[str] = None
    returning_visitor: bool = False
    form_history: FormHistory = field(default_factory=FormHistory)
    industry_rate: Optional[float] = None
    spam_domains: FrozenSet[str] = frozenset()
    verified_domains: FrozenSet[str] = frozenset()


def score_interaction_quality(form_data: Mapping[str, Any]) -> float:
    """0.5 base, plus valid email, phone and a full name."""
    quality = 0.5

    if _is_valid_email(_text(form_data.get("email"))):
        quality += 0.2
    if _text(form_data.get("phone")):
        quality += 0.1
    if len(_text(form_data.get("name")).split()) >= 2:
        quality += 0.1

    return min(quality, 1.0)


def predict_conversion_probability(
    form_data: Mapping[str, Any],
    context: Optional[SignalContext] = None,
) -> float:
    """Weighted blend of the conversion signals, bounded to [0.01, 0.95]."""
    context = context or SignalContext()
    probability = BASE_PROBABILITY
    for name, score in conversion_signals(form_data, context).items():
        probability += score * SIGNAL_WEIGHTS[name]

    probability *= prediction_confidence(form_data)
    return max(0.01, min(probability, 0.95))


def conversion_signals(form_data: Mapping[str, Any], context: Optional[SignalContext] = None) -> Dict[str, float]:
    context = context or SignalContext()
    return {
        "intent": intent_score(form_data),
        "email_quality": email_domain_score(form_data, context),
        "completion": completion_score(form_data),
        "behaviour": behaviour_score(form_data, context),
        "historical": historical_score(form_data, context),
        "temporal": temporal_score(context.submitted_at),
    }


def intent_score(form_data: Mapping[str, Any]) -> float:
    """Purchase readiness from keywords, high-value fields and urgency."""
    content = json.dumps(dict(form_data), default=str).lower()
    score = 0.0

    for signal, weight in HIGH_INTENT.items():
        if signal in content:
            score = max(score, weight)

    if score < 0.60:
        for signal, weight in MEDIUM_INTENT.items():
            if signal in content:
                score = max(score, weight)

    if score < 0.20:
        for signal, weight in LOW_INTENT.items():
            if signal in content:
                score = max(score, weight)

    high_value_count = sum(1 for name in HIGH_VALUE_FIELDS if _text(form_data.get(name)))
    if high_value_count >= 4:
        score *= 1.20
    elif high_value_count >= 2:
        score *= 1.10

    if any(keyword in content for keyword in URGENCY_KEYWORDS):
        score *= 1.15

    return min(score, 1.0)


def email_domain_score(form_data: Mapping[str, Any], context: Optional[SignalContext] = None) -> float:
    context = context or SignalContext()
    email = _text(form_data.get("email")).lower()
    if not email:
        return 0.30
    if not _is_valid_email(email):
        return 0.05

    domain = email.rsplit("@", 1)[1]

    if domain in CONSUMER_PROVIDERS:
        return CONSUMER_PROVIDERS[domain]
    if any(pattern in domain for pattern in DISPOSABLE_PATTERNS):
        return 0.02
    if email.startswith(ROLE_PREFIXES):
        return 0.45

    score = 0.70
    for tld, multiplier in PREMIUM_TLDS:
        if domain.endswith(tld):
            score *= multiplier
            break

    score *= domain_reputation(domain, context)

    company = _text(form_data.get("company"))
    if company:
        company_key = re.sub(r"[^a-z0-9]", "", company.lower())
        domain_key = re.sub(r"[^a-z0-9]", "", domain.split(".")[0])
        if _similarity_percent(company_key, domain_key) > 60:
            score *= 1.15

    return min(score, 1.0)


def domain_reputation(domain: str, context: SignalContext) -> float:
    reputation = 1.0
    if domain in context.spam_domains:
        reputation = 0.50
    if domain in context.verified_domains:
        reputation = 1.20
    return reputation


def completion_score(form_data: Mapping[str, Any]) -> float:
    """60% response quality, 40% completeness."""
    total_fields = len(form_data)
    if total_fields == 0:
        return 0.0

    quality = 0.0
    filled = 0
    for key, raw_value in form_data.items():
        value = _text(raw_value)
        if not value or not is_quality_response(value):
            continue

        filled += 1
        if len(value) > 50:
            field_score = 0.20
        elif len(value) > 20:
            field_score = 0.12
        elif len(value) > 5:
            field_score = 0.06
        else:
            field_score = 0.02

        if key in KEY_BUSINESS_FIELDS:
            field_score *= 1.5
        quality += field_score

    completeness = filled / total_fields
    score = (quality / total_fields) * 0.60 + completeness * 0.40
    if filled >= 8:
        score *= 1.15
    return min(score, 1.0)


def behaviour_score(form_data: Mapping[str, Any], context: Optional[SignalContext] = None) -> float:
    """Pages visited, time on site, referrer type, campaign tagging and return visits."""
    context = context or SignalContext()
    score = 0.5

    pages_visited = _integer(form_data.get("pages_visited"), context.pages_visited, 1)
    if pages_visited >= 10:
        score += 0.30
    elif pages_visited >= 5:
        score += 0.20
    elif pages_visited >= 3:
        score += 0.10

    session_duration = _integer(form_data.get("session_duration"), context.session_duration, 0)
    if session_duration >= 600:
        score += 0.25
    elif session_duration >= 300:
        score += 0.15
    elif session_duration >= 120:
        score += 0.08

    referrer = context.referrer or ""
    if referrer:
        if context.host and context.host.lower() in referrer.lower():
            score += 0.15
        elif SEARCH_REFERRER.search(referrer):
            score += 0.10
        elif SOCIAL_REFERRER.search(referrer):
            score += 0.05

    if _text(form_data.get("utm_campaign")) or context.utm_campaign:
        score += 0.08

    if context.returning_visitor or _text(form_data.get("returning_visitor")):
        score += 0.12

    return min(score, 1.0)


def historical_score(form_data: Mapping[str, Any], context: Optional[SignalContext] = None) -> float:
    """Smoothed historical conversion rate of the form, blended with the industry rate."""
    context = context or SignalContext()
    total = context.form_history.total_submissions
    conversions = context.form_history.conversions

    if total < 20:
        return 0.50

    rate = conversions / total
    smoothed = (conversions + 1) / (total + 2)
    sample_confidence = min(total / 100, 1.0)
    final_rate = rate * sample_confidence + smoothed * (1 - sample_confidence)

    if _text(form_data.get("industry")):
        industry_rate = context.industry_rate if context.industry_rate is not None else 0.50
        final_rate = final_rate * 0.7 + industry_rate * 0.3

    return min(final_rate, 1.0)


def temporal_score(moment: Optional[datetime] = None) -> float:
    """Business hours, weekdays, mid-week peaks and month end score higher."""
    moment = moment or datetime.now(timezone.utc)
    hour = moment.hour
    weekday = moment.isoweekday()
    score = 0.5

    if 9 <= hour < 17:
        score += 0.25
    elif 7 <= hour < 21:
        score += 0.15
    else:
        score -= 0.10

    if weekday <= 5:
        score += 0.20
    else:
        score += 0.05

    if 2 <= weekday <= 4 and (10 <= hour < 11 or 14 <= hour < 15):
        score += 0.10

    if moment.day >= 25:
        score += 0.05

    return min(score, 1.0)


def prediction_confidence(form_data: Mapping[str, Any]) -> float:
    """Scale down predictions built from few data points."""
    data_points = sum(1 for name in CONFIDENCE_INDICATORS if _text(form_data.get(name)))
    if data_points < 2:
        return 0.70
    if data_points < 4:
        return 0.85
    return 1.0


def is_quality_response(value: str) -> bool:
    """False for spam, placeholder and test answers."""
    value = value.strip()
    if any(pattern.search(value) for pattern in SPAM_RESPONSE_PATTERNS):
        return False
    return len(value) >= 2


def _is_valid_email(value: str) -> bool:
    return bool(value) and EMAIL_PATTERN.match(value) is not None


def _similarity_percent(left: str, right: str) -> float:
    if not left or not right:
        return 0.0
    return SequenceMatcher(None, left, right).ratio() * 100


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _integer(value: Any, fallback: Optional[int], default: int) -> int:
    for candidate in (value, fallback):
        if candidate is None or candidate == "":
            continue
        try:
            return int(candidate)
        except (TypeError, ValueError):
            continue
    return default
