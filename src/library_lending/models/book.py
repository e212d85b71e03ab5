"""
Book model for the library lending engine.

Only the fields the lending lifecycle reads or reports are modelled here;
catalog maintenance lives outside this package.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .enums import BookStatus, CatalogStatus


class Book(BaseModel):
    """
    A catalog entry and its copy counters.

    ``status`` is derived: MAINTENANCE or LOST when the catalog says so,
    otherwise ISSUED when no copy is on the shelf, otherwise AVAILABLE.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Opaque book identifier")

    isbn: str = Field(
        ...,
        description="ISBN-13 without hyphens",
        pattern=r"^\d{13}$",
        examples=["9780134685479"],
    )

    title: str = Field(..., min_length=1, max_length=500)

    author: str | None = Field(None, max_length=200)

    total_copies: int = Field(..., ge=1, description="Copies owned by the library")

    available_copies: int = Field(..., ge=0, description="Copies on the shelf")

    catalog_status: CatalogStatus = Field(default=CatalogStatus.AVAILABLE)

    status: BookStatus = Field(..., description="Loan-facing status, derived on read")

    created_at: datetime | None = None

    @model_validator(mode="after")
    def validate_copies(self) -> "Book":
        if self.available_copies > self.total_copies:
            raise ValueError("Available copies cannot exceed total copies")
        return self

    @property
    def copies_on_loan(self) -> int:
        return self.total_copies - self.available_copies
