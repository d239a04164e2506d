# This project was developed with assistance from AI tools.
"""
Cooperative society -- domain models

Members, approval requests with their per-level approval steps, the
append-only account ledger, and loans with their repayment schedules.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from .database import Base
from .enums import (
    AccountKind,
    ApprovalStatus,
    EntryType,
    LoanStatus,
    RequestStatus,
    RequestType,
    ScheduleStatus,
    StepStage,
    TransactionStatus,
    UserRole,
)


class Member(Base):
    """Cooperative member, linked to an identity-provider subject once they sign in."""

    __tablename__ = "members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), unique=True, nullable=True, index=True)
    full_name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(50), nullable=True)
    department = Column(String(200), nullable=True)
    erp_id = Column(String(100), nullable=True)
    is_approved = Column(Boolean, nullable=False, default=False)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    accounts = relationship("Account", back_populates="member", cascade="all, delete-orphan")
    loans = relationship("Loan", back_populates="member")

    __mapper_args__ = {"eager_defaults": True}

    def __repr__(self):
        return f"<Member(id={self.id}, name='{self.full_name}')>"


class Request(Base):
    """A member-initiated request travelling through an approval chain."""

    __tablename__ = "requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(
        Enum(RequestType, name="request_type", native_enum=False),
        nullable=False,
        index=True,
    )
    status = Column(
        Enum(RequestStatus, name="request_status", native_enum=False),
        nullable=False,
        default=RequestStatus.PENDING,
        index=True,
    )
    content = Column(JSON, nullable=False, default=dict)
    initiator_id = Column(String(255), nullable=False, index=True)
    member_id = Column(
        Integer, ForeignKey("members.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    account_id = Column(
        Integer, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True,
    )
    current_approval_level = Column(Integer, nullable=False, default=1)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    approval_steps = relationship(
        "ApprovalStep",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="ApprovalStep.level",
    )
    member = relationship("Member")

    __mapper_args__ = {"version_id_col": version, "eager_defaults": True}

    def __repr__(self):
        return f"<Request(id={self.id}, type='{self.type}', status='{self.status}')>"


class ApprovalStep(Base):
    """One level of a request's approval chain."""

    __tablename__ = "approval_steps"
    __table_args__ = (
        UniqueConstraint("request_id", "level", name="uq_approval_step_level"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(
        Integer, ForeignKey("requests.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    level = Column(Integer, nullable=False)
    approver_role = Column(
        Enum(UserRole, name="user_role", native_enum=False),
        nullable=False,
    )
    stage = Column(
        Enum(StepStage, name="step_stage", native_enum=False),
        nullable=False,
    )
    status = Column(
        Enum(ApprovalStatus, name="approval_status", native_enum=False),
        nullable=False,
        default=ApprovalStatus.PENDING,
    )
    approver_id = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    acted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    request = relationship("Request", back_populates="approval_steps")

    __mapper_args__ = {"eager_defaults": True}

    def __repr__(self):
        return f"<ApprovalStep(request_id={self.request_id}, level={self.level}, status='{self.status}')>"


class Account(Base):
    """Member account whose balance is the fold of its ledger entries."""

    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    member_id = Column(
        Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    kind = Column(
        Enum(AccountKind, name="account_kind", native_enum=False),
        nullable=False,
    )
    name = Column(String(200), nullable=True)
    target_amount = Column(Numeric(14, 2), nullable=True)
    balance = Column(Numeric(14, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    member = relationship("Member", back_populates="accounts")
    transactions = relationship(
        "LedgerTransaction", back_populates="account", order_by="LedgerTransaction.id",
    )

    __mapper_args__ = {"version_id_col": version, "eager_defaults": True}

    def __repr__(self):
        return f"<Account(id={self.id}, kind='{self.kind}', balance={self.balance})>"


class LedgerTransaction(Base):
    """Append-only ledger entry. Amounts are never edited once written."""

    __tablename__ = "ledger_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(
        Integer, ForeignKey("accounts.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    base_type = Column(
        Enum(EntryType, name="entry_type", native_enum=False),
        nullable=False,
    )
    amount = Column(Numeric(14, 2), nullable=False)
    balance_after = Column(Numeric(14, 2), nullable=False)
    status = Column(
        Enum(TransactionStatus, name="transaction_status", native_enum=False),
        nullable=False,
        default=TransactionStatus.COMPLETED,
    )
    request_id = Column(
        Integer, ForeignKey("requests.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    reversal_of_id = Column(
        Integer, ForeignKey("ledger_transactions.id", ondelete="RESTRICT"),
        nullable=True, unique=True,
    )
    description = Column(Text, nullable=True)
    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    account = relationship("Account", back_populates="transactions")

    __mapper_args__ = {"eager_defaults": True}

    def __repr__(self):
        return f"<LedgerTransaction(id={self.id}, {self.base_type} {self.amount})>"


class Loan(Base):
    """Disbursed loan amortized over monthly payment schedules."""

    __tablename__ = "loans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    member_id = Column(
        Integer, ForeignKey("members.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    request_id = Column(
        Integer, ForeignKey("requests.id", ondelete="RESTRICT"), nullable=False, unique=True,
    )
    account_id = Column(
        Integer, ForeignKey("accounts.id", ondelete="RESTRICT"), nullable=False,
    )
    principal_amount = Column(Numeric(14, 2), nullable=False)
    interest_rate = Column(Numeric(6, 3), nullable=False)
    tenure_months = Column(Integer, nullable=False)
    monthly_payment = Column(Numeric(14, 2), nullable=False)
    total_amount = Column(Numeric(14, 2), nullable=False)
    paid_amount = Column(Numeric(14, 2), nullable=False, default=0)
    remaining_balance = Column(Numeric(14, 2), nullable=False)
    status = Column(
        Enum(LoanStatus, name="loan_status", native_enum=False),
        nullable=False,
        default=LoanStatus.DISBURSED,
    )
    disbursed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    member = relationship("Member", back_populates="loans")
    schedules = relationship(
        "PaymentSchedule",
        back_populates="loan",
        cascade="all, delete-orphan",
        order_by="PaymentSchedule.sequence_number",
    )
    repayments = relationship(
        "LoanRepayment", back_populates="loan", cascade="all, delete-orphan",
    )
    status_history = relationship(
        "LoanStatusHistory",
        back_populates="loan",
        cascade="all, delete-orphan",
        order_by="LoanStatusHistory.id",
    )

    __mapper_args__ = {"version_id_col": version, "eager_defaults": True}

    def __repr__(self):
        return f"<Loan(id={self.id}, status='{self.status}', remaining={self.remaining_balance})>"


class PaymentSchedule(Base):
    """One monthly installment of a loan."""

    __tablename__ = "payment_schedules"
    __table_args__ = (
        UniqueConstraint("loan_id", "sequence_number", name="uq_schedule_sequence"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    loan_id = Column(
        Integer, ForeignKey("loans.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    sequence_number = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False)
    expected_amount = Column(Numeric(14, 2), nullable=False)
    principal_portion = Column(Numeric(14, 2), nullable=False)
    interest_portion = Column(Numeric(14, 2), nullable=False)
    paid_amount = Column(Numeric(14, 2), nullable=False, default=0)
    principal_paid = Column(Numeric(14, 2), nullable=False, default=0)
    interest_paid = Column(Numeric(14, 2), nullable=False, default=0)
    status = Column(
        Enum(ScheduleStatus, name="schedule_status", native_enum=False),
        nullable=False,
        default=ScheduleStatus.PENDING,
    )
    paid_at = Column(DateTime(timezone=True), nullable=True)

    loan = relationship("Loan", back_populates="schedules")

    def __repr__(self):
        return f"<PaymentSchedule(loan_id={self.loan_id}, seq={self.sequence_number}, status='{self.status}')>"


class LoanRepayment(Base):
    """An ingested repayment; ``reference`` makes ingestion idempotent."""

    __tablename__ = "loan_repayments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    loan_id = Column(
        Integer, ForeignKey("loans.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    amount = Column(Numeric(14, 2), nullable=False)
    reference = Column(String(255), nullable=True, unique=True)
    received_by = Column(String(255), nullable=True)
    received_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    loan = relationship("Loan", back_populates="repayments")

    __mapper_args__ = {"eager_defaults": True}


class LoanStatusHistory(Base):
    """Append-only record of loan status changes."""

    __tablename__ = "loan_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    loan_id = Column(
        Integer, ForeignKey("loans.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    from_status = Column(
        Enum(LoanStatus, name="loan_status", native_enum=False),
        nullable=True,
    )
    to_status = Column(
        Enum(LoanStatus, name="loan_status", native_enum=False),
        nullable=False,
    )
    changed_by = Column(String(255), nullable=True)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    loan = relationship("Loan", back_populates="status_history")

    __mapper_args__ = {"eager_defaults": True}
