"""
SequenceService -- date-scoped counter allocation via locked counter rows.

Responsibility:
    Hands out the next number for a (prefix, date_key) pair, e.g. the
    ``0003`` in ``CA-250314-0003``.  A dedicated counter table with
    row-level locking (``SELECT ... FOR UPDATE``) guarantees uniqueness
    under concurrent lot starts.

Architecture position:
    Kernel > Services.  Used by SqlAlchemyStockStore.next_sequence().

Invariants enforced:
    - Numbers for one key are strictly increasing.  Aggregate max-plus-one
      over production_lots is never used; the locked row is the sole
      source of truth.
    - Transactional: an increment is only visible after the caller's
      transaction commits; rollback returns the number.

Failure modes:
    - IntegrityError: concurrent first use of a key (handled via savepoint
      rollback and re-read).
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mes_kernel.logging_config import get_logger
from mes_kernel.models.sequence_counter import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Transactional keyed counters.

    Non-goals:
        - Does NOT call ``session.commit()``; the caller owns the transaction.
        - Does NOT enforce an upper limit; lot numbering checks its own.
    """

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, prefix: str, date_key: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(
                SequenceCounter.prefix == prefix,
                SequenceCounter.date_key == date_key,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, prefix: str, date_key: str) -> int:
        """
        Lock (or create) the counter row, increment it, return the new value.

        Postconditions:
            - Returns an integer > 0, greater than any value previously
              returned for this key in committed transactions.
            - The counter row stays locked until the transaction completes.
        """
        counter = self._locked_counter(prefix, date_key)

        if counter is None:
            # First use of the key.  A savepoint keeps a lost insert race
            # from rolling back the rest of the caller's work.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(prefix=prefix, date_key=date_key, last_number=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"prefix": prefix, "date_key": date_key, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"prefix": prefix, "date_key": date_key},
                )
                savepoint.rollback()
                counter = self._locked_counter(prefix, date_key)
                if counter is None:
                    raise

        counter.last_number += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"prefix": prefix, "date_key": date_key, "value": counter.last_number},
        )
        return counter.last_number

    def current_value(self, prefix: str, date_key: str) -> int | None:
        """Current value without incrementing, or None if the key is unused."""
        counter = self._session.execute(
            select(SequenceCounter).where(
                SequenceCounter.prefix == prefix,
                SequenceCounter.date_key == date_key,
            )
        ).scalar_one_or_none()
        return counter.last_number if counter else None
