# This project was developed with assistance from AI tools.
"""Approval orchestrator.

One unit of work per action: lock the request row, work out the acting
level, authorize the actor, plan the transition, run the financial
effect and write the new state, then commit. Any failure rolls the whole
unit back, so a request never moves without its ledger entry and vice
versa. The domain event goes out only after the commit succeeds.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from db import Request
from db.enums import RequestAction
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from ..core.config import settings
from ..core.errors import (
    ConcurrentModificationError,
    InputValidationError,
    NotFoundError,
    WorkflowError,
)
from ..schemas.auth import UserContext
from .approval_chain import authorize, resolve_acting_level
from .events import RequestEvent, publish
from .financial_effects import apply_financial_effect
from .requests import get_request
from .state_machine import TransitionPlan, apply_transition, plan_cancellation, plan_transition

logger = logging.getLogger(__name__)

LOCK_NOT_AVAILABLE = "55P03"


def _is_lock_conflict(exc: DBAPIError) -> bool:
    """True when Postgres refused a NOWAIT row lock."""
    for candidate in (exc.orig, getattr(exc.orig, "__cause__", None)):
        if candidate is None:
            continue
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code == LOCK_NOT_AVAILABLE:
            return True
    return False


async def _lock_request(session: AsyncSession, request_id: int) -> Request | None:
    stmt = (
        select(Request)
        .options(selectinload(Request.approval_steps))
        .where(Request.id == request_id)
        .with_for_update(nowait=settings.REQUEST_LOCK_NOWAIT)
        .execution_options(populate_existing=True)
    )
    try:
        result = await session.execute(stmt)
    except DBAPIError as exc:
        if _is_lock_conflict(exc):
            raise ConcurrentModificationError(
                f"Request {request_id} is being processed by someone else; retry shortly",
                request_id=request_id,
            ) from exc
        raise
    return result.unique().scalar_one_or_none()


async def _run_transition(
    session: AsyncSession,
    user: UserContext,
    request_id: int,
    decide: Callable[[Request], TransitionPlan],
) -> Request:
    """Lock, plan, settle, apply and commit one transition."""
    try:
        request = await _lock_request(session, request_id)
        if request is None or (
            user.data_scope.own_data_only and request.initiator_id != user.user_id
        ):
            raise NotFoundError(f"Request {request_id} not found")

        plan = decide(request)
        request_type = request.type
        await apply_financial_effect(session, request, plan)
        apply_transition(request, plan)
        await session.commit()
    except StaleDataError as exc:
        await session.rollback()
        raise ConcurrentModificationError(
            f"Request {request_id} was modified concurrently; reload and retry",
            request_id=request_id,
        ) from exc
    except WorkflowError as exc:
        await session.rollback()
        if exc.request_id is None:
            exc.request_id = request_id
        logger.info("Action on request %s refused: %s %s", request_id, exc.code, exc.message)
        raise

    logger.info(
        "Request %s %s at level %d by %s: %s -> %s",
        request_id,
        plan.action,
        plan.level,
        user.user_id,
        plan.from_status.value,
        plan.to_status.value,
    )
    await publish(
        RequestEvent(
            request_id=request_id,
            request_type=request_type,
            action=plan.action,
            from_status=plan.from_status,
            to_status=plan.to_status,
            level=plan.level,
            actor_id=plan.actor_id,
            timestamp=plan.acted_at,
        )
    )
    return await get_request(session, user, request_id)


async def process_request(
    session: AsyncSession,
    user: UserContext,
    request_id: int,
    action: RequestAction,
    *,
    notes: str | None = None,
    level: int | None = None,
    now: datetime | None = None,
) -> Request:
    """Apply a review, approve, reject or complete action to a request.

    Args:
        level: Chain level the actor acts at. When omitted it comes from
            the actor's approval level, then from their role.

    Raises:
        WorkflowError: any refusal from the taxonomy in ``core.errors``.
            Nothing is persisted when one is raised.
    """
    action = RequestAction(action)
    if action == RequestAction.REJECT and not (notes and notes.strip()):
        raise InputValidationError(
            "Notes are required when rejecting a request",
            field="notes",
            request_id=request_id,
        )
    acted_at = now or datetime.now(UTC)

    def decide(request: Request) -> TransitionPlan:
        acting_level = resolve_acting_level(request, user, level)
        step = next((s for s in request.approval_steps if s.level == acting_level), None)
        if step is not None:
            authorize(step, user)
        return plan_transition(
            request,
            action,
            acting_level,
            actor_id=user.user_id,
            notes=notes,
            now=acted_at,
        )

    return await _run_transition(session, user, request_id, decide)


async def cancel_request(
    session: AsyncSession,
    user: UserContext,
    request_id: int,
    *,
    notes: str | None = None,
    now: datetime | None = None,
) -> Request:
    """Withdraw a pending request on behalf of its initiator."""
    acted_at = now or datetime.now(UTC)

    def decide(request: Request) -> TransitionPlan:
        return plan_cancellation(request, actor_id=user.user_id, notes=notes, now=acted_at)

    return await _run_transition(session, user, request_id, decide)
