"""
Module: coa_kernel.models.account
Responsibility: ORM persistence for the chart of accounts -- one row per
    account, scoped to a company.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - (company_id, code) is unique (uq_account_company_code).  This
      constraint, not the code generator, is the final arbiter of code
      uniqueness under concurrent creation.
    - level is non-negative.

Failure modes:
    - IntegrityError on a duplicate (company_id, code); the store maps it
      to DuplicateCodeError.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from coa_kernel.db.base import TrackedBase, UUIDString
from coa_kernel.db.types import DecimalType


class Account(TrackedBase):
    """
    Chart of accounts entry.

    Enumerations (account_type, sub_type, status) are stored as their
    string values; the store converts them back to enums at its boundary.
    opening_balance is stored in the account's own sign convention.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_account_company_code"),
        CheckConstraint("level >= 0", name="ck_account_level_non_negative"),
        Index("idx_account_company_type", "company_id", "account_type"),
        Index("idx_account_parent", "parent_account_id"),
        Index("idx_account_company_status", "company_id", "status"),
    )

    company_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    account_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    sub_type: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
    )

    # Weak reference: the hierarchy manager, not the database, owns
    # parent consistency (type match, no cycles, level).
    parent_account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    level: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    is_control_account: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    allow_direct_transactions: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
    )

    opening_balance: Mapped[Decimal] = mapped_column(
        DecimalType(),
        nullable=False,
        default=Decimal("0"),
    )

    opening_balance_date: Mapped[date | None] = mapped_column(
        nullable=True,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        String(4000),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"
