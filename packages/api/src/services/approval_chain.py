# This project was developed with assistance from AI tools.
"""Approval chain resolver.

Static configuration of who approves what, keyed by request type. The
chain is snapshotted onto ``ApprovalStep`` rows when a request is created,
so a policy change here only affects requests created afterwards.

Pure lookups, no I/O.
"""

from dataclasses import dataclass

from db import ApprovalStep
from db.enums import ApprovalStatus, RequestStatus, RequestType, StepStage, UserRole

from ..core.auth import APPROVE_REQUESTS, COMPLETE_REQUESTS, REVIEW_REQUESTS
from ..core.errors import InputValidationError, UnauthorizedError
from ..schemas.auth import UserContext

STAGE_PERMISSIONS: dict[StepStage, str] = {
    StepStage.REVIEW: REVIEW_REQUESTS,
    StepStage.APPROVAL: APPROVE_REQUESTS,
    StepStage.COMPLETION: COMPLETE_REQUESTS,
}


@dataclass(frozen=True)
class ChainStep:
    level: int
    approver_role: UserRole
    stage: StepStage
    label: str

    @property
    def required_permission(self) -> str:
        return STAGE_PERMISSIONS[self.stage]


_REVIEW_AND_APPROVE = (
    ChainStep(1, UserRole.TREASURER, StepStage.REVIEW, "Treasurer review"),
    ChainStep(2, UserRole.CHAIRMAN, StepStage.APPROVAL, "Chairman approval"),
)

_WITHDRAWAL = _REVIEW_AND_APPROVE + (
    ChainStep(3, UserRole.TREASURER, StepStage.COMPLETION, "Treasurer disbursement"),
)

APPROVAL_CHAINS: dict[RequestType, tuple[ChainStep, ...]] = {
    RequestType.MEMBER_REGISTRATION: (
        ChainStep(1, UserRole.ADMIN, StepStage.REVIEW, "Registration review"),
        ChainStep(2, UserRole.CHAIRMAN, StepStage.APPROVAL, "Membership approval"),
    ),
    RequestType.PERSONAL_SAVINGS_CREATION: _REVIEW_AND_APPROVE,
    RequestType.PERSONAL_SAVINGS_WITHDRAWAL: _WITHDRAWAL,
    RequestType.SAVINGS_WITHDRAWAL: _WITHDRAWAL,
    RequestType.LOAN_APPLICATION: (
        ChainStep(1, UserRole.TREASURER, StepStage.REVIEW, "Loan review"),
        ChainStep(2, UserRole.CHAIRMAN, StepStage.APPROVAL, "Loan approval"),
    ),
}


def validate_chain(chain: tuple[ChainStep, ...]) -> None:
    """Check a chain's shape.

    Levels run 1..N without gaps, exactly one APPROVAL step closes the
    approval phase, and at most one COMPLETION step follows it.
    """
    if [step.level for step in chain] != list(range(1, len(chain) + 1)):
        raise ValueError("Chain levels must be contiguous and start at 1")

    stages = [step.stage for step in chain]
    if stages.count(StepStage.APPROVAL) != 1:
        raise ValueError("Chain must contain exactly one approval step")

    approval_index = stages.index(StepStage.APPROVAL)
    if any(stage != StepStage.REVIEW for stage in stages[:approval_index]):
        raise ValueError("Only review steps may precede the approval step")
    if stages[approval_index + 1:] not in ([], [StepStage.COMPLETION]):
        raise ValueError("At most one completion step may follow the approval step")


for _chain in APPROVAL_CHAINS.values():
    validate_chain(_chain)


def get_chain(request_type: RequestType) -> tuple[ChainStep, ...]:
    """Return the configured chain for a request type."""
    try:
        return APPROVAL_CHAINS[RequestType(request_type)]
    except (KeyError, ValueError) as exc:
        raise InputValidationError(
            f"No approval chain configured for request type '{request_type}'",
            field="type",
        ) from exc


def build_steps(request_type: RequestType) -> list[ApprovalStep]:
    """Create the pending ApprovalStep rows for a new request."""
    return [
        ApprovalStep(
            level=step.level,
            approver_role=step.approver_role,
            stage=step.stage,
            status=ApprovalStatus.PENDING,
        )
        for step in get_chain(request_type)
    ]


def settlement_status(steps) -> RequestStatus:
    """Status at which a request's financial effect fires.

    Chains with a completion step settle on COMPLETED; the others settle
    (and stop) at APPROVED.
    """
    if any(step.stage == StepStage.COMPLETION for step in steps):
        return RequestStatus.COMPLETED
    return RequestStatus.APPROVED


def _holds_role(actor: UserContext, role: UserRole) -> bool:
    return actor.role == role or actor.role == UserRole.SUPER_ADMIN


def authorize(step, actor: UserContext) -> str:
    """Return the role label expected at ``step`` or raise UnauthorizedError.

    ``step`` is an ApprovalStep row or a ChainStep; both carry the
    approver role and stage.
    """
    expected = step.approver_role.value
    if not _holds_role(actor, step.approver_role):
        raise UnauthorizedError(
            f"Level {step.level} must be processed by role '{expected}'",
            context={"level": step.level, "required_role": expected, "actor_role": actor.role.value},
        )

    permission = STAGE_PERMISSIONS[step.stage]
    if permission not in actor.permissions:
        raise UnauthorizedError(
            f"Permission '{permission}' is required at level {step.level}",
            context={"level": step.level, "required_permission": permission},
        )
    return expected


def resolve_acting_level(request, actor: UserContext, requested_level: int | None = None) -> int:
    """Work out which chain level the actor is acting at.

    Precedence: the explicitly requested level, then the pending step at
    ``current_approval_level`` when the actor's role owns it, then the
    actor's ``approval_level`` claim, then the lowest level assigned to
    the actor's role. A repeated action by the same role lands on the
    step it already processed and is refused as already processed.

    A super_admin owns every step, so it must name the level (explicitly
    or through its claim); otherwise a repeated click would advance the
    chain a second time.
    """
    if requested_level is not None:
        return requested_level

    if actor.role == UserRole.SUPER_ADMIN:
        if actor.approval_level is not None:
            return actor.approval_level
        raise InputValidationError(
            "A super_admin must state the level it acts at",
            field="level",
            context={"current_level": request.current_approval_level},
        )

    steps = sorted(request.approval_steps, key=lambda s: s.level)
    for step in steps:
        if step.level == request.current_approval_level and step.approver_role == actor.role:
            return step.level
    if actor.approval_level is not None:
        return actor.approval_level
    for step in steps:
        if step.approver_role == actor.role:
            return step.level

    raise UnauthorizedError(
        f"Role '{actor.role.value}' has no step in this request's approval chain",
        context={"actor_role": actor.role.value},
    )
