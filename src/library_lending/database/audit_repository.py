"""
Audit trail for lending operations.

Entries are added to the caller's session and committed with the operation
they describe, so an operation and its audit row land together or not at
all. ``user_id`` is a plain string rather than a foreign key: the trail
must outlive the accounts it mentions.
"""

import json
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..clock import Clock, system_clock
from ..models.audit import AuditEntry
from ..models.enums import AuditAction
from .schema import AuditLog as AuditLogDB
from .session import safe_query


class AuditRepository:
    def __init__(self, session: Session, clock: Clock = system_clock):
        self.session = session
        self.clock = clock

    def record(
        self,
        action: AuditAction,
        entity: str,
        entity_id: str,
        user_id: str | None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Stage an audit row in the current transaction. Does not commit."""
        self.session.add(
            AuditLogDB(
                action=action,
                entity=entity,
                entity_id=entity_id,
                user_id=user_id,
                details=json.dumps(details, default=str) if details is not None else None,
                created_at=self.clock(),
            )
        )

    def list_entries(
        self,
        entity: str | None = None,
        entity_id: str | None = None,
        action: AuditAction | None = None,
    ) -> list[AuditEntry]:
        """Entries matching every given filter, oldest first."""
        query = select(AuditLogDB)
        if entity is not None:
            query = query.where(AuditLogDB.entity == entity)
        if entity_id is not None:
            query = query.where(AuditLogDB.entity_id == entity_id)
        if action is not None:
            query = query.where(AuditLogDB.action == action)
        query = query.order_by(AuditLogDB.id)

        rows = safe_query(
            self.session,
            lambda s: s.execute(query).scalars().all(),
            "Failed to list audit entries",
        )
        return [AuditEntry.model_validate(row, from_attributes=True) for row in rows]
