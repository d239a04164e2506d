# This project was developed with assistance from AI tools.
"""Approval request routes.

Role checks here only gate who may call an endpoint. Whether an actor may
act on a particular chain level is decided by the orchestrator, which
answers with a structured workflow error.
"""

from db import get_db
from db.enums import RequestStatus, RequestType, UserRole
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import CREATE_REQUESTS
from ..middleware.auth import CurrentUser, require_permission, require_roles
from ..schemas import Pagination
from ..schemas.request import (
    CancelRequest,
    ProcessRequest,
    RequestCreate,
    RequestListResponse,
    RequestResponse,
    RequestStatistics,
)
from ..services import requests as request_service
from ..services.orchestrator import cancel_request, process_request

router = APIRouter()

_ALL_ROLES = tuple(UserRole)
_STAFF_ROLES = (
    UserRole.SUPER_ADMIN,
    UserRole.ADMIN,
    UserRole.TREASURER,
    UserRole.CHAIRMAN,
)


@router.get(
    "/",
    response_model=RequestListResponse,
    dependencies=[Depends(require_roles(*_ALL_ROLES))],
)
async def list_requests(
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
    request_type: RequestType | None = Query(default=None, alias="type"),
    request_status: RequestStatus | None = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    awaiting_me: bool = Query(default=False),
) -> RequestListResponse:
    """List requests visible to the caller, filtered by type and status."""
    offset = (page - 1) * limit
    requests, total = await request_service.list_requests(
        session,
        user,
        offset=offset,
        limit=limit,
        request_type=request_type,
        status=request_status,
        awaiting_role=user.role if awaiting_me else None,
    )
    return RequestListResponse(
        data=[RequestResponse.model_validate(r) for r in requests],
        pagination=Pagination.for_page(total, page, limit),
    )


@router.get(
    "/statistics",
    response_model=RequestStatistics,
    dependencies=[Depends(require_roles(*_STAFF_ROLES))],
)
async def request_statistics(
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> RequestStatistics:
    """Counts by status and type, and how many requests wait on each role."""
    stats = await request_service.get_statistics(session, user)
    return RequestStatistics(**stats)


@router.get(
    "/{request_id}",
    response_model=RequestResponse,
    dependencies=[Depends(require_roles(*_ALL_ROLES))],
)
async def get_request(
    request_id: int,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> RequestResponse:
    """Get a single request with its approval steps. 404 when out of scope."""
    request = await request_service.get_request(session, user, request_id)
    if request is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Request not found",
        )
    return RequestResponse.model_validate(request)


@router.post(
    "/",
    response_model=RequestResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(*_ALL_ROLES)), Depends(require_permission(CREATE_REQUESTS))],
)
async def submit_request(
    body: RequestCreate,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> RequestResponse:
    """Submit a new request; its approval chain is attached automatically."""
    request = await request_service.create_request(session, user, body)
    return RequestResponse.model_validate(request)


@router.post(
    "/{request_id}/process",
    response_model=RequestResponse,
    dependencies=[Depends(require_roles(*_ALL_ROLES))],
)
async def process(
    request_id: int,
    body: ProcessRequest,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> RequestResponse:
    """Review, approve, reject or complete the request at the actor's level."""
    request = await process_request(
        session,
        user,
        request_id,
        body.action,
        notes=body.notes,
        level=body.level,
    )
    return RequestResponse.model_validate(request)


@router.post(
    "/{request_id}/cancel",
    response_model=RequestResponse,
    dependencies=[Depends(require_roles(*_ALL_ROLES))],
)
async def cancel(
    request_id: int,
    user: CurrentUser,
    body: CancelRequest | None = None,
    session: AsyncSession = Depends(get_db),
) -> RequestResponse:
    """Withdraw a pending request. Only its initiator may cancel it."""
    request = await cancel_request(
        session,
        user,
        request_id,
        notes=body.notes if body else None,
    )
    return RequestResponse.model_validate(request)
