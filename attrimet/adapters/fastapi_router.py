"""FastAPI router exposing touchpoint ingestion and conversion finalization."""

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from ..exceptions import ConfigurationError, SessionFinalizedError
from ..logger import log
from ..models import AttributionResult, Touchpoint
from ..recorder import as_utc
from ..service import AttributionService
from ..signals import SignalContext


class EngagementPayload(BaseModel):
    time_spent: int = 0
    pages_viewed: int = 1
    interactions: int = 0


class TouchpointRequest(BaseModel):
    """Touchpoint submitted by a page-view or form collaborator"""
    session_id: str = Field(min_length=1)
    affiliate_id: Optional[str] = None
    interaction_quality: Optional[float] = None
    conversion_probability: Optional[float] = None
    channel: Optional[str] = None
    type: Optional[str] = None
    timestamp: Optional[datetime] = None
    engagement: Optional[EngagementPayload] = None
    campaign: Dict[str, str] = Field(default_factory=dict)
    page_url: str = ""
    referrer: str = ""


class FormSubmissionRequest(BaseModel):
    """Form posted on a tracked page"""
    session_id: str = Field(min_length=1)
    form_data: Dict[str, Any] = Field(default_factory=dict)
    affiliate_id: Optional[str] = None
    channel: Optional[str] = None
    timestamp: Optional[datetime] = None
    referrer: str = ""
    page_url: str = ""
    pages_visited: Optional[int] = None
    session_duration: Optional[int] = None
    utm_campaign: Optional[str] = None
    returning_visitor: bool = False


class ConversionRequest(BaseModel):
    """Order completion reported by a checkout collaborator"""
    session_id: str = Field(min_length=1)
    order_id: str = Field(min_length=1)
    conversion_value: float = Field(ge=0)
    conversion_time: Optional[datetime] = None


def build_router(service: AttributionService, prefix: str = "/attribution") -> APIRouter:
    router = APIRouter(prefix=prefix, tags=["attribution"])

    @router.post("/touchpoints", status_code=201)
    def record_touchpoint(request: TouchpointRequest):
        try:
            touchpoint = service.record_touchpoint(
                request.session_id,
                affiliate_id=request.affiliate_id,
                quality=request.interaction_quality,
                conversion_probability=request.conversion_probability,
                channel=request.channel,
                type=request.type,
                timestamp=request.timestamp,
                engagement=request.engagement.model_dump() if request.engagement else None,
                campaign=request.campaign,
                page_url=request.page_url,
                referrer=request.referrer,
            )
        except SessionFinalizedError as e:
            raise HTTPException(status_code=409, detail=e.to_dict())

        return _touchpoint_response(touchpoint)

    @router.post("/form-submissions", status_code=201)
    def record_form_submission(request: FormSubmissionRequest, http_request: Request):
        timestamp = as_utc(request.timestamp)
        signal_context = SignalContext(
            submitted_at=timestamp,
            referrer=request.referrer,
            host=http_request.url.hostname or "",
            pages_visited=request.pages_visited,
            session_duration=request.session_duration,
            utm_campaign=request.utm_campaign,
            returning_visitor=request.returning_visitor,
        )
        try:
            touchpoint = service.record_form_submission(
                request.session_id,
                request.form_data,
                affiliate_id=request.affiliate_id,
                signal_context=signal_context,
                channel=request.channel,
                timestamp=timestamp,
                page_url=request.page_url,
            )
        except SessionFinalizedError as e:
            raise HTTPException(status_code=409, detail=e.to_dict())

        return _touchpoint_response(touchpoint)

    @router.post("/conversions")
    def finalize_conversion(request: ConversionRequest):
        try:
            result = service.finalize(
                request.session_id,
                request.order_id,
                request.conversion_value,
                conversion_time=request.conversion_time,
            )
        except ConfigurationError as e:
            log.error(f"Attribution configuration error: {e.message}")
            raise HTTPException(status_code=400, detail=e.to_dict())

        return serialize_result(result)

    @router.get("/results/{order_id}/{session_id}")
    def get_result(order_id: str, session_id: str):
        result = service.get_result(order_id, session_id)
        if result is None:
            raise HTTPException(status_code=404, detail="Attribution result not found")
        return serialize_result(result)

    return router


def _touchpoint_response(touchpoint: Touchpoint) -> Dict:
    return {
        "status": "recorded",
        "session_id": touchpoint.session_id,
        "affiliate_id": touchpoint.affiliate_id,
        "type": touchpoint.type,
        "timestamp": touchpoint.timestamp.isoformat(),
        "interaction_quality": touchpoint.interaction_quality,
        "conversion_probability": touchpoint.conversion_probability,
    }


def serialize_result(result: AttributionResult) -> Dict:
    return {
        "order_id": result.order_id,
        "session_id": result.session_id,
        "conversion_value": result.conversion_value,
        "per_strategy_results": {
            name: dict(values) for name, values in result.per_strategy_results.items()
        },
        "final_attribution": dict(result.final_attribution),
        "confidence": result.confidence,
        "attribution_entropy": result.attribution_entropy,
        "created_at": result.created_at.isoformat(),
    }
