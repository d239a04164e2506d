# This project was developed with assistance from AI tools.
__version__ = "0.1.0"

from .database import Base, DatabaseService, get_db, get_db_service
from .enums import (
    AccountKind,
    ApprovalStatus,
    EntryType,
    LoanStatus,
    RequestAction,
    RequestStatus,
    RequestType,
    ScheduleStatus,
    StepStage,
    TransactionStatus,
    UserRole,
)
from .models import (
    Account,
    ApprovalStep,
    LedgerTransaction,
    Loan,
    LoanRepayment,
    LoanStatusHistory,
    Member,
    PaymentSchedule,
    Request,
)

__all__ = [
    "Base",
    "DatabaseService",
    "get_db",
    "get_db_service",
    "__version__",
    # Enums
    "AccountKind",
    "ApprovalStatus",
    "EntryType",
    "LoanStatus",
    "RequestAction",
    "RequestStatus",
    "RequestType",
    "ScheduleStatus",
    "StepStage",
    "TransactionStatus",
    "UserRole",
    # Models
    "Account",
    "ApprovalStep",
    "LedgerTransaction",
    "Loan",
    "LoanRepayment",
    "LoanStatusHistory",
    "Member",
    "PaymentSchedule",
    "Request",
]
