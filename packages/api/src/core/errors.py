# This project was developed with assistance from AI tools.
"""Workflow error taxonomy.

Every error raised by the approval and ledger services derives from
``WorkflowError`` and carries a stable machine-readable ``code`` plus the
HTTP status the API layer renders it with. Nothing here imports FastAPI,
so services can raise these errors outside a request.
"""

from decimal import Decimal


class WorkflowError(Exception):
    """Base class for structured workflow failures."""

    code = "WORKFLOW_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        request_id: int | None = None,
        context: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.field = field
        self.request_id = request_id
        self.context = context or {}

    def to_payload(self) -> dict:
        payload = {"code": self.code, "message": self.message}
        if self.field is not None:
            payload["field"] = self.field
        context = dict(self.context)
        if self.request_id is not None:
            context["request_id"] = self.request_id
        if context:
            payload["context"] = context
        return payload


class InputValidationError(WorkflowError):
    """Malformed input, e.g. a rejection without notes."""

    code = "VALIDATION_ERROR"
    status_code = 422


class NotFoundError(WorkflowError):
    code = "NOT_FOUND"
    status_code = 404


class UnauthorizedError(WorkflowError):
    """Actor's role or permissions do not match the step they act on."""

    code = "UNAUTHORIZED"
    status_code = 403


class OutOfSequenceError(WorkflowError):
    """Actor acted at a level that is not the request's current level."""

    code = "OUT_OF_SEQUENCE"
    status_code = 409


class AlreadyProcessedError(WorkflowError):
    """The step (or ingestion reference) was already acted on."""

    code = "ALREADY_PROCESSED"
    status_code = 409


class InvalidTransitionError(WorkflowError):
    """Action is not legal from the request's current status or stage."""

    code = "INVALID_TRANSITION"
    status_code = 409


class InsufficientBalanceError(WorkflowError):
    code = "INSUFFICIENT_BALANCE"
    status_code = 422

    def __init__(
        self,
        available: Decimal,
        requested: Decimal,
        *,
        account_id: int | None = None,
        request_id: int | None = None,
    ):
        self.available = available
        self.requested = requested
        self.shortfall = requested - available
        super().__init__(
            f"Insufficient balance: requested {requested}, available {available} "
            f"(short by {self.shortfall}).",
            field="amount",
            request_id=request_id,
            context={
                "account_id": account_id,
                "available": str(available),
                "requested": str(requested),
                "shortfall": str(self.shortfall),
            },
        )


class EligibilityError(WorkflowError):
    """Member does not meet the cooperative's rules for this request."""

    code = "NOT_ELIGIBLE"
    status_code = 422


class ConcurrentModificationError(WorkflowError):
    """Lost an optimistic-concurrency race; reload and retry."""

    code = "CONCURRENT_MODIFICATION"
    status_code = 409


class AlreadyDisbursedError(WorkflowError):
    code = "ALREADY_DISBURSED"
    status_code = 409


class ScheduleExhaustedError(WorkflowError):
    """Repayment exceeds everything still owed on the loan."""

    code = "SCHEDULE_EXHAUSTED"
    status_code = 422

    def __init__(self, excess: Decimal, *, loan_id: int | None = None):
        self.excess = excess
        super().__init__(
            f"Repayment exceeds the outstanding balance by {excess}.",
            field="amount",
            context={"loan_id": loan_id, "excess": str(excess)},
        )
