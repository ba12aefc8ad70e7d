"""
Classification Controllers (API Routes)
=======================================

FastAPI routes for classifying text and reloading vocabularies.

Controllers are thin - they delegate to application services.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from incident_desk.classification.application import (
    ClassificationService,
    ClassifyRequest,
    ClassifyResponse,
    ReloadRequest,
    ReloadResponse,
)
from incident_desk.core import PermissionDeniedException
from incident_desk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/classification", tags=["Classification"])


# ========== Dependencies ==========

def get_classification_service(request: Request) -> ClassificationService:
    """Get the classification service from app state."""
    service = getattr(request.app.state, "classification_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Classification service not available"
        )
    return service


# ========== Route Handlers ==========

@router.post(
    "/classify",
    response_model=ClassifyResponse,
    summary="Classify a report",
    description="""
    Run the three-tier classifier on a free-text report.

    **Tiers** (first non-empty wins):
    - `explicit`: trigger terms such as "sistemas" or "mantenimiento"
    - `mention`: the teams of @-mentioned users
    - `keywords`: fuzzy keyword scoring (score >= 1.0 includes a team)

    An empty `teams` list means the reporter must be asked for the department.
    """
)
async def classify_text(
    request: ClassifyRequest,
    service: ClassificationService = Depends(get_classification_service),
):
    result = service.classify(request.text, request.mentioned_user_ids)
    return ClassifyResponse(
        teams=list(result.teams),
        tier=result.tier,
        scores=result.scores,
        needs_clarification=result.is_empty,
    )


@router.post(
    "/reload",
    response_model=ReloadResponse,
    summary="Reload keyword and user directory files (admin)",
)
async def reload_configuration(
    body: ReloadRequest,
    request: Request,
    service: ClassificationService = Depends(get_classification_service),
):
    if not service.directory.is_admin(body.requester_id):
        raise PermissionDeniedException(body.requester_id, "reload configuration")

    keyword_manager = getattr(request.app.state, "keyword_manager", None)
    user_manager = getattr(request.app.state, "user_manager", None)

    keywords_reloaded = keyword_manager.reload() if keyword_manager else False
    users_reloaded = user_manager.reload() if user_manager else False

    logger.info(
        "Configuration reload requested",
        extra={
            "requester_id": body.requester_id,
            "keywords_reloaded": keywords_reloaded,
            "users_reloaded": users_reloaded,
        }
    )

    return ReloadResponse(
        keywords_reloaded=keywords_reloaded,
        users_reloaded=users_reloaded,
        teams=service.keywords.known_teams,
        user_count=len(service.directory.users),
    )
