"""
Module: mes_kernel.models.sequence_counter
Responsibility: Keyed counter rows backing date-scoped lot numbering.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (prefix, date_key) is unique; the row is the sole source of truth for
      the next number.  Aggregate max-plus-one over production_lots is never
      used.
"""

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from mes_kernel.db.base import Base


class SequenceCounter(Base):
    """Last number handed out for one (prefix, date_key)."""

    __tablename__ = "sequence_counters"

    __table_args__ = (
        UniqueConstraint("prefix", "date_key", name="uq_sequence_counter_key"),
    )

    prefix: Mapped[str] = mapped_column(String(20), nullable=False)

    # YYMMDD
    date_key: Mapped[str] = mapped_column(String(8), nullable=False)

    last_number: Mapped[int] = mapped_column(nullable=False, default=0)
