"""Two-minute AttriMet demo: FastAPI backend over an in-memory repository."""

from datetime import datetime, timedelta, timezone
from random import Random

from fastapi import FastAPI

from attrimet.adapters import InMemoryAttributionRepository
from attrimet.adapters.fastapi_router import build_router, serialize_result
from attrimet.config import get_config
from attrimet.emitter import ResultEmitter
from attrimet.logger import log, setup_logger
from attrimet.models import AffiliatePerformance, ChannelPerformance, HistoricalContext
from attrimet.service import AttributionService

RNG = Random(42)
CHANNELS = ["email", "social", "search", "display"]
TYPES = ["click", "product_view", "form_submission", "email_open", "purchase_intent"]
AFFILIATES = ["aff-101", "aff-202", "aff-303", None]

config = get_config()
setup_logger(config.log_level)

repo = InMemoryAttributionRepository(
    history=HistoricalContext(
        channels={
            "search": ChannelPerformance(avg_value=320.0, avg_touchpoints=3.2, conversions=48),
            "email": ChannelPerformance(avg_value=85.0, avg_touchpoints=2.1, conversions=31),
        },
        affiliates={
            "aff-101": AffiliatePerformance(total_conversions=12, total_value=6400.0, avg_value=533.0),
            "aff-303": AffiliatePerformance(total_conversions=3, total_value=150.0, avg_value=50.0),
        },
    )
)
emitter = ResultEmitter(
    lambda result: log.info(f"Forwarding attribution for order {result.order_id}"),
    max_pending=config.emitter_max_pending,
    max_workers=config.emitter_workers,
)
service = AttributionService(repo, config=config, emitter=emitter)

app = FastAPI(title="AttriMet Two-Minute Demo", version="0.1.0")
app.include_router(build_router(service))


def _seed_demo_sessions(count: int = 20) -> list[dict]:
    now = datetime.now(timezone.utc)
    results = []
    for idx in range(count):
        session_id = f"demo-session-{idx}"
        touchpoints = RNG.randint(1, 6)
        start = now - timedelta(hours=RNG.randint(12, 240))
        for step in range(touchpoints):
            service.record_touchpoint(
                session_id,
                affiliate_id=RNG.choice(AFFILIATES),
                quality=round(RNG.uniform(0.2, 1.0), 2),
                conversion_probability=round(RNG.uniform(0.05, 0.9), 2),
                channel=RNG.choice(CHANNELS),
                type=RNG.choice(TYPES),
                timestamp=start + timedelta(hours=step * RNG.randint(1, 30)),
                engagement={
                    "time_spent": RNG.randint(0, 600),
                    "pages_viewed": RNG.randint(1, 8),
                    "interactions": RNG.randint(0, 15),
                },
            )
        result = service.finalize(session_id, f"order-{idx}", round(RNG.uniform(20, 400), 2), conversion_time=now)
        results.append(serialize_result(result))
    return results


DEMO_RESULTS = _seed_demo_sessions()


@app.get("/api/demo/results")
def demo_results():
    return {"results": DEMO_RESULTS}


@app.get("/health")
def health():
    return {"status": "ok", "generated_at": datetime.now(timezone.utc).isoformat()}
