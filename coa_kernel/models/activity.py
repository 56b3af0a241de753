"""
Module: coa_kernel.models.activity
Responsibility: Posted debit/credit legs against accounts.  The kernel only
    reads their totals; producing them (journal posting) belongs to an
    outer system.
Architecture position: Kernel > Models.  May import from db/ only.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Index
from sqlalchemy.orm import Mapped, mapped_column

from coa_kernel.db.base import Base, UUIDString
from coa_kernel.db.types import DecimalType


class LedgerActivity(Base):
    """One posted leg. Exactly one of debit_amount/credit_amount is usually non-zero."""

    __tablename__ = "ledger_activity"

    __table_args__ = (
        Index("idx_activity_account_date", "account_id", "entry_date"),
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    entry_date: Mapped[date] = mapped_column(
        nullable=False,
    )

    debit_amount: Mapped[Decimal] = mapped_column(
        DecimalType(),
        nullable=False,
        default=Decimal("0"),
    )

    credit_amount: Mapped[Decimal] = mapped_column(
        DecimalType(),
        nullable=False,
        default=Decimal("0"),
    )
