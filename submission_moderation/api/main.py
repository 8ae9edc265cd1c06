"""FastAPI backend for reviewers and submission forms.

Endpoints:
- POST /submissions                run one submission through the pipeline
- GET  /queue                      list items by status, content type, priority
- GET  /queue/{item_id}            one item
- POST /queue/{item_id}/decision   moderator decision on one item
- POST /queue/bulk-decision        one decision on many items
- POST /rate-limit/check           check and consume a rate-limit attempt
- POST /listings, PATCH /listings/{id}, POST /listings/{id}/claim, POST /reviews
- GET  /content/{entity_id}/versions
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from submission_moderation.bootstrap import ModerationServices, build_services
from submission_moderation.errors import (
    ClaimConflictError, ClassifierError, ContentNotFoundError, ItemNotFoundError,
    ModerationError, OwnershipError, SubmissionValidationError, TransitionConflictError
)
from submission_moderation.models.enums import (
    ContentType, PipelineOutcome, QueueStatus, RateLimitAction, ReviewPriority
)
from submission_moderation.models.queue import BulkDecisionRequest, BulkDecisionResult, DecisionRequest

ERROR_STATUS = [
    (SubmissionValidationError, 422),
    (ItemNotFoundError, 404),
    (ContentNotFoundError, 404),
    (TransitionConflictError, 409),
    (ClaimConflictError, 409),
    (OwnershipError, 403),
    (ClassifierError, 502),
]


class RateLimitCheck(BaseModel):
    identifier: str = Field(min_length=1)
    action: RateLimitAction


def _status_for(error: ModerationError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return 400


def _parse_priority(priority: Optional[str]) -> Optional[ReviewPriority]:
    if priority is None:
        return None
    try:
        return ReviewPriority.parse(priority)
    except (KeyError, ValueError):
        raise HTTPException(status_code=422, detail=f"Unknown priority: {priority}")


def _require_user(user_id: Optional[str]) -> str:
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user_id


def create_app(services: Optional[ModerationServices] = None) -> FastAPI:
    services = services or build_services()
    app = FastAPI(title="Submission Moderation API", version="0.1.0")
    app.state.services = services

    @app.exception_handler(ModerationError)
    async def moderation_error_handler(request: Request, exc: ModerationError):
        body: Dict[str, Any] = {"detail": str(exc)}
        if isinstance(exc, SubmissionValidationError):
            body["errors"] = exc.errors
        return JSONResponse(status_code=_status_for(exc), content=body)

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok", "queue": services.queue.stats().model_dump()}

    @app.post("/submissions")
    async def submit(payload: Dict[str, Any]):
        result = await services.moderation_service.process(payload)
        body: Dict[str, Any] = {
            "outcome": result.outcome.value,
            "routing_path": result.routing_path,
            "processing_time_ms": result.total_processing_time_ms,
            "item": result.item.model_dump(mode="json") if result.item else None,
            "spam_assessment": result.spam_assessment.model_dump() if result.spam_assessment else None,
            "ai_assessment": result.ai_assessment.model_dump() if result.ai_assessment else None,
        }
        if result.outcome is PipelineOutcome.RATE_LIMITED:
            body["rate_limit"] = result.rate_limit.model_dump(mode="json")
            return JSONResponse(status_code=429, content=body)
        return body

    @app.get("/queue")
    def list_queue(
        status: Optional[QueueStatus] = None,
        content_type: Optional[ContentType] = None,
        priority: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        items = services.queue.list_items(
            status=status, content_type=content_type, priority=_parse_priority(priority)
        )
        return [item.model_dump(mode="json") for item in items]

    @app.get("/queue/stats")
    def queue_stats() -> Dict[str, Any]:
        return services.queue.stats().model_dump()

    @app.get("/queue/{item_id}")
    def get_item(item_id: str) -> Dict[str, Any]:
        return services.queue.get_item(item_id).model_dump(mode="json")

    @app.post("/queue/bulk-decision")
    async def bulk_decision(request: BulkDecisionRequest) -> Dict[str, Any]:
        results = await services.queue.submit_bulk_decision(
            request.item_ids, request.decision, request.moderator_id, request.notes
        )
        bulk = BulkDecisionResult(results=results)
        return {
            "succeeded": bulk.succeeded,
            "failed": bulk.failed,
            **bulk.model_dump(mode="json"),
        }

    @app.post("/queue/{item_id}/decision")
    def decide(item_id: str, request: DecisionRequest) -> Dict[str, Any]:
        item = services.queue.submit_decision(
            item_id,
            request.decision,
            request.moderator_id,
            notes=request.notes,
            escalated_to=request.escalated_to,
            escalation_reason=request.escalation_reason,
        )
        return item.model_dump(mode="json")

    @app.post("/rate-limit/check")
    def rate_limit_check(request: RateLimitCheck) -> Dict[str, Any]:
        result = services.rate_limiter.check_and_consume(request.identifier, request.action)
        return result.model_dump(mode="json")

    @app.post("/listings", status_code=201)
    def create_listing(payload: Dict[str, Any], x_user_id: Optional[str] = Header(default=None)):
        return services.listing_service.create_listing(payload, owner_id=x_user_id)

    @app.patch("/listings/{listing_id}")
    def update_listing(listing_id: str, payload: Dict[str, Any], x_user_id: Optional[str] = Header(default=None)):
        return services.listing_service.update_listing(listing_id, payload, _require_user(x_user_id))

    @app.post("/listings/{listing_id}/claim")
    def claim_listing(listing_id: str, payload: Optional[Dict[str, Any]] = None,
                      x_user_id: Optional[str] = Header(default=None)):
        return services.listing_service.claim_listing(listing_id, _require_user(x_user_id), payload or None)

    @app.post("/reviews", status_code=201)
    def create_review(payload: Dict[str, Any]):
        return services.listing_service.create_review(payload)

    @app.get("/content/{entity_id}/versions")
    def versions(entity_id: str) -> List[Dict[str, Any]]:
        return [v.model_dump(mode="json") for v in services.audit_trail.history(entity_id)]

    return app


app = create_app()
