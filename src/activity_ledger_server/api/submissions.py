"""Activity submission endpoint."""

from typing import Any

from litestar import Response, Router, post
from litestar.status_codes import HTTP_201_CREATED, HTTP_400_BAD_REQUEST, HTTP_409_CONFLICT
from sqlalchemy.ext.asyncio import AsyncSession

from activity_ledger_server.core.auth import api_key_guard
from activity_ledger_server.core.cache import CacheClient
from activity_ledger_server.schemas.ledger import SubmissionRequest
from activity_ledger_server.services.submission import SubmissionResult, SubmissionService


def submission_response(result: SubmissionResult) -> Response[dict[str, Any]]:
    """201 on success, 409 for a retryable conflict, 400 otherwise."""
    if result.success:
        status_code = HTTP_201_CREATED
    elif result.retryable:
        status_code = HTTP_409_CONFLICT
    else:
        status_code = HTTP_400_BAD_REQUEST
    return Response(content=result.to_dict(), status_code=status_code)


@post("/submissions")
async def submit_activities(
    data: SubmissionRequest,
    identity: str,
    session: AsyncSession,
    cache: CacheClient,
) -> Response[dict[str, Any]]:
    """Record completed and skipped activities for the current principal.

    Returns the points earned by this submission and the updated weekly
    total for the submitter's household.

    Example:
        POST /api/v1/submissions
        {"activities": ["Exercise for 30 minutes"], "skipped": ["Take vitamins"]}
    """
    service = SubmissionService(session, cache)
    result = await service.submit(identity, data.activities, skipped=data.skipped)
    return submission_response(result)


submissions_router = Router(
    path="/",
    route_handlers=[submit_activities],
    guards=[api_key_guard],
    tags=["Submissions"],
)
