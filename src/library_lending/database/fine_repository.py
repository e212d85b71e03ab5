"""
Fine configuration store.

The configuration is a table, not process state: every server instance and
every sweep reads the same active row. History is append-only. A replace
clears ``is_active`` on the current row and inserts its successor in one
transaction, and a partial unique index on ``is_active`` guarantees that
two writers racing to do either can never leave two active rows behind.
"""

import logging
from decimal import Decimal, InvalidOperation

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..clock import Clock, system_clock
from ..fine_policy import MAX_MONEY, to_money
from ..models.enums import AuditAction
from ..models.fines import FineConfiguration as FineConfigurationModel
from .audit_repository import AuditRepository
from .repository import (
    BaseRepository,
    ConflictError,
    InvalidFineConfigurationError,
    RepositoryException,
)
from .schema import FineConfiguration as FineConfigurationDB
from .session import safe_query

logger = logging.getLogger(__name__)

DEFAULT_FINE_PER_DAY = Decimal("10.00")
DEFAULT_MAX_FINE_AMOUNT = Decimal("1000.00")
DEFAULT_GRACE_PERIOD_DAYS = 1


def _config_amount(name: str, value: Decimal | int | float | str) -> Decimal:
    """Parse one money value of a new configuration."""
    try:
        amount = to_money(value)
    except InvalidOperation as e:
        raise InvalidFineConfigurationError(f"{name} is not a valid amount: {value}") from e
    if not amount.is_finite() or amount <= 0:
        raise InvalidFineConfigurationError(f"{name} must be greater than 0")
    if amount > MAX_MONEY:
        raise InvalidFineConfigurationError(f"{name} cannot exceed {MAX_MONEY}")
    return amount


class FineConfigurationRepository(
    BaseRepository[FineConfigurationDB, FineConfigurationModel]
):
    """
    Repository for the fine configuration history.
    """

    def __init__(self, session: Session, clock: Clock = system_clock):
        super().__init__(session)
        self.clock = clock

    @property
    def model_class(self) -> type[FineConfigurationDB]:
        return FineConfigurationDB

    @property
    def response_schema(self) -> type[FineConfigurationModel]:
        return FineConfigurationModel

    def _select_active(self) -> FineConfigurationDB | None:
        return safe_query(
            self.session,
            lambda s: s.execute(
                select(FineConfigurationDB)
                .where(FineConfigurationDB.is_active.is_(True))
                .execution_options(populate_existing=True)
            ).scalar_one_or_none(),
            "Failed to get active fine configuration",
        )

    def get_active(self) -> FineConfigurationModel:
        """
        Return the active configuration, creating the defaults if there is none.

        Creating the defaults commits, so call this before staging any other
        writes on the same session. Two callers racing to create the
        defaults both end up with the single row that won.
        """
        active = self._select_active()
        if active is not None:
            return self._to_response_model(active)

        default = FineConfigurationDB(
            fine_per_day=DEFAULT_FINE_PER_DAY,
            max_fine_amount=DEFAULT_MAX_FINE_AMOUNT,
            grace_period_days=DEFAULT_GRACE_PERIOD_DAYS,
            is_active=True,
            created_at=self.clock(),
        )
        self.session.add(default)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            logger.info("Default fine configuration was created concurrently, re-reading it")
            active = self._select_active()
            if active is None:
                raise ConflictError("Active fine configuration changed during bootstrap") from None
            return self._to_response_model(active)
        except SQLAlchemyError as e:
            self.session.rollback()
            raise RepositoryException(f"Failed to create default fine configuration: {e!s}") from e

        logger.info(
            "No active fine configuration found, created defaults: per_day=%s max=%s grace=%s",
            DEFAULT_FINE_PER_DAY,
            DEFAULT_MAX_FINE_AMOUNT,
            DEFAULT_GRACE_PERIOD_DAYS,
        )
        return self._to_response_model(default)

    def replace(
        self,
        fine_per_day: Decimal | int | float | str,
        max_fine_amount: Decimal | int | float | str,
        grace_period_days: int,
        actor_id: str | None = None,
    ) -> FineConfigurationModel:
        """
        Deactivate the current configuration and activate a new one.

        Raises:
            InvalidFineConfigurationError: If a value is out of range
            ConflictError: If another replace committed first
        """
        per_day = _config_amount("fine_per_day", fine_per_day)
        max_fine = _config_amount("max_fine_amount", max_fine_amount)

        if grace_period_days < 0:
            raise InvalidFineConfigurationError("grace_period_days cannot be negative")

        with self._transaction("replace fine configuration"):
            previous = self._select_active()
            try:
                self.session.execute(
                    update(FineConfigurationDB)
                    .where(FineConfigurationDB.is_active.is_(True))
                    .values(is_active=False)
                    .execution_options(synchronize_session=False)
                )
                replacement = FineConfigurationDB(
                    fine_per_day=per_day,
                    max_fine_amount=max_fine,
                    grace_period_days=grace_period_days,
                    is_active=True,
                    created_by_id=actor_id,
                    created_at=self.clock(),
                )
                self.session.add(replacement)
                self.session.flush()
            except IntegrityError as e:
                raise ConflictError("Fine configuration was replaced concurrently") from e

            AuditRepository(self.session, self.clock).record(
                AuditAction.UPDATE_FINE_CONFIG,
                "FineConfiguration",
                str(replacement.id),
                actor_id,
                {
                    "previous_id": previous.id if previous else None,
                    "fine_per_day": per_day,
                    "max_fine_amount": max_fine,
                    "grace_period_days": grace_period_days,
                },
            )

        logger.info(
            "Fine configuration replaced by %s: per_day=%s max=%s grace=%s",
            actor_id,
            per_day,
            max_fine,
            grace_period_days,
        )
        return self._to_response_model(replacement)

    def history(self) -> list[FineConfigurationModel]:
        """Every configuration ever stored, newest first."""
        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(FineConfigurationDB)
                .order_by(FineConfigurationDB.created_at.desc(), FineConfigurationDB.id.desc())
                .execution_options(populate_existing=True)
            )
            .scalars()
            .all(),
            "Failed to list fine configuration history",
        )
        return [self._to_response_model(row) for row in rows]
