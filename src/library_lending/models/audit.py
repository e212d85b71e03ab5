"""Audit trail entry as returned to callers."""

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from .enums import AuditAction


class AuditEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    action: AuditAction
    entity: str
    entity_id: str
    user_id: str | None = None
    details: dict[str, Any] | None = None
    created_at: datetime

    @field_validator("details", mode="before")
    @classmethod
    def parse_details(cls, v: Any) -> Any:
        """The table stores details as JSON text."""
        if isinstance(v, str):
            return json.loads(v)
        return v
