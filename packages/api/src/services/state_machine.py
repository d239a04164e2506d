# This project was developed with assistance from AI tools.
"""Request state machine.

Pure, no I/O. ``plan_transition`` validates an action against the request
and its approval steps and returns a ``TransitionPlan`` without touching
the objects; ``apply_transition`` writes a plan onto them. Keeping the two
apart lets the orchestrator run financial effects before anything on the
request changes.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

from db.enums import ApprovalStatus, RequestAction, RequestStatus, StepStage

from ..core.errors import (
    AlreadyProcessedError,
    InputValidationError,
    InvalidTransitionError,
    OutOfSequenceError,
    UnauthorizedError,
)
from .approval_chain import settlement_status

_TERMINAL_STATUSES = RequestStatus.terminal_statuses()

STAGE_ACTIONS: dict[StepStage, frozenset[RequestAction]] = {
    StepStage.REVIEW: frozenset({RequestAction.REVIEW, RequestAction.APPROVE, RequestAction.REJECT}),
    StepStage.APPROVAL: frozenset({RequestAction.APPROVE, RequestAction.REJECT}),
    StepStage.COMPLETION: frozenset({RequestAction.COMPLETE, RequestAction.REJECT}),
}

_REVIEW_PROGRESSION = {
    RequestStatus.PENDING: RequestStatus.IN_REVIEW,
    RequestStatus.IN_REVIEW: RequestStatus.REVIEWED,
    RequestStatus.REVIEWED: RequestStatus.REVIEWED,
}


@dataclass(frozen=True)
class TransitionPlan:
    """Outcome of a validated action, not yet written to the request."""

    action: str
    level: int
    from_status: RequestStatus
    to_status: RequestStatus
    next_level: int
    step_status: ApprovalStatus | None
    actor_id: str
    notes: str | None
    acted_at: datetime
    settles: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.settles or self.to_status in _TERMINAL_STATUSES


def _find_step(request, level: int):
    return next((s for s in request.approval_steps if s.level == level), None)


def _is_closed(request) -> bool:
    """True once the request can take no further action."""
    if request.status in _TERMINAL_STATUSES:
        return True
    return (
        request.status == RequestStatus.APPROVED
        and settlement_status(request.approval_steps) == RequestStatus.APPROVED
    )


def _check_transition(from_status: RequestStatus, to_status: RequestStatus) -> None:
    if from_status == to_status:
        return
    allowed = RequestStatus.valid_transitions().get(from_status, frozenset())
    if to_status not in allowed:
        raise InvalidTransitionError(
            f"Cannot transition from '{from_status.value}' to '{to_status.value}'. "
            f"Allowed: {sorted(s.value for s in allowed) if allowed else 'none (terminal status)'}."
        )


def plan_transition(
    request,
    action: RequestAction,
    acting_level: int,
    *,
    actor_id: str,
    notes: str | None = None,
    now: datetime | None = None,
) -> TransitionPlan:
    """Validate ``action`` at ``acting_level`` and describe its outcome.

    Raises:
        InputValidationError: reject without notes.
        OutOfSequenceError: level is not in the chain or is not the current level.
        AlreadyProcessedError: the step at that level was already acted on.
        InvalidTransitionError: the request is closed, or the action does not
            fit the step's stage or the request's status.
    """
    action = RequestAction(action)
    notes = notes.strip() if notes else None
    if action == RequestAction.REJECT and not notes:
        raise InputValidationError("Notes are required when rejecting a request", field="notes")

    step = _find_step(request, acting_level)
    if step is None:
        raise OutOfSequenceError(
            f"Level {acting_level} is not part of this request's approval chain",
            context={"level": acting_level},
        )
    if step.status != ApprovalStatus.PENDING:
        raise AlreadyProcessedError(
            f"Level {acting_level} was already processed ({step.status.value})",
            context={"level": acting_level, "step_status": step.status.value},
        )
    if _is_closed(request):
        raise InvalidTransitionError(
            f"Request is already {request.status.value}; no further actions are possible",
        )
    if acting_level != request.current_approval_level:
        raise OutOfSequenceError(
            f"Request is awaiting level {request.current_approval_level}, not level {acting_level}",
            context={"current_level": request.current_approval_level, "level": acting_level},
        )
    if action not in STAGE_ACTIONS[step.stage]:
        raise InvalidTransitionError(
            f"Action '{action.value}' is not allowed at a {step.stage.value} step",
            context={"level": acting_level, "stage": step.stage.value},
        )

    from_status = request.status
    next_level = acting_level
    settles = False
    has_completion = settlement_status(request.approval_steps) == RequestStatus.COMPLETED

    if action == RequestAction.REJECT:
        to_status = RequestStatus.REJECTED
        step_status = ApprovalStatus.REJECTED
    elif step.stage == StepStage.REVIEW:
        to_status = _REVIEW_PROGRESSION.get(from_status, from_status)
        step_status = ApprovalStatus.REVIEWED if action == RequestAction.REVIEW else ApprovalStatus.APPROVED
        next_level = acting_level + 1
    elif step.stage == StepStage.APPROVAL:
        to_status = RequestStatus.APPROVED
        step_status = ApprovalStatus.APPROVED
        if has_completion:
            next_level = acting_level + 1
        else:
            settles = True
    else:
        if from_status != RequestStatus.APPROVED:
            raise InvalidTransitionError(
                f"Only approved requests can be completed (status is '{from_status.value}')",
            )
        to_status = RequestStatus.COMPLETED
        step_status = ApprovalStatus.APPROVED
        settles = True

    _check_transition(from_status, to_status)

    return TransitionPlan(
        action=action.value,
        level=acting_level,
        from_status=from_status,
        to_status=to_status,
        next_level=next_level,
        step_status=step_status,
        actor_id=actor_id,
        notes=notes,
        acted_at=now or datetime.now(UTC),
        settles=settles,
    )


def plan_cancellation(
    request,
    *,
    actor_id: str,
    notes: str | None = None,
    now: datetime | None = None,
) -> TransitionPlan:
    """Initiator withdraws a request nobody has acted on yet."""
    if actor_id != request.initiator_id:
        raise UnauthorizedError("Only the initiator can cancel a request")
    if request.status == RequestStatus.CANCELLED:
        raise AlreadyProcessedError("Request is already cancelled")
    if request.status != RequestStatus.PENDING or any(
        s.status != ApprovalStatus.PENDING for s in request.approval_steps
    ):
        raise InvalidTransitionError(
            f"Only pending requests can be cancelled (status is '{request.status.value}')",
        )

    return TransitionPlan(
        action="cancel",
        level=request.current_approval_level,
        from_status=request.status,
        to_status=RequestStatus.CANCELLED,
        next_level=request.current_approval_level,
        step_status=None,
        actor_id=actor_id,
        notes=notes.strip() if notes else None,
        acted_at=now or datetime.now(UTC),
    )


def apply_transition(request, plan: TransitionPlan) -> None:
    """Write a validated plan onto the request and its acting step."""
    if plan.step_status is not None:
        step = _find_step(request, plan.level)
        step.status = plan.step_status
        step.approver_id = plan.actor_id
        step.notes = plan.notes
        step.acted_at = plan.acted_at

    request.status = plan.to_status
    request.current_approval_level = plan.next_level
    if plan.is_terminal:
        request.completed_at = plan.acted_at
