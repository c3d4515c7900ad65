"""
Module: mes_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the surrogate integer primary key convention, the type annotation map for
    consistent column types, and the TrackedBase mixin for row timestamps.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel.  ALL model files import from here.  This module MUST NOT import
    from models/, storage/, services/, selectors/ or outer layers.

Invariants enforced:
    - Decimal quantities: type_annotation_map maps Python Decimal to
      Numeric(18, 6).  NEVER use float for stock quantities.
    - Timezone-aware timestamps: datetime maps to DateTime(timezone=True).

Failure modes:
    - IntegrityError on duplicate natural keys (material code, lot number,
      sequence counter key), surfaced by the owning service.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import DateTime, Integer, Numeric, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

QUANTITY = Numeric(18, 6)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is an autoincrementing integer surrogate key.  Plain Integer
          (not BigInteger) so SQLite test databases get ROWID aliasing.
        - Decimal maps to Numeric(18, 6).
        - datetime maps to DateTime(timezone=True).
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: QUANTITY,
        datetime: DateTime(timezone=True),
        int: Integer,
    }

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )


class TrackedBase(Base):
    """
    Abstract base with row timestamps.

    Guarantees:
        - created_at is set to server NOW() on INSERT and never changes.
        - updated_at is set on INSERT and refreshed on every UPDATE.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
