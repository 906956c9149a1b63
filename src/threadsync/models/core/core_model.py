"""
CoreModel - Base model for threadsync entities.

Messages and threads share:
- Identity (id - opaque server string, or a client-side temporary id)
- Temporal tracking (created_at, always timezone-aware UTC)
- Flexible metadata (opaque payload)

Wire format is the messaging server's camelCase JSON. Python attributes are
snake_case; both spellings are accepted on input and ``model_dump(by_alias=True)``
produces camelCase.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ...utils.date_utils import ensure_utc, utc_now

WIRE_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    extra="ignore",
)


class CoreModel(BaseModel):
    """
    Base model for messaging entities.

    Note: ID generation is handled by the server (or by the reconciler for
    optimistic messages), never by CoreModel.
    """

    model_config = WIRE_CONFIG

    id: str = Field(..., description="Unique identifier assigned by the server")
    created_at: datetime = Field(
        default_factory=utc_now, description="Entity creation timestamp (UTC)"
    )
    metadata: Any | None = Field(
        default=None, description="Opaque metadata payload"
    )

    @field_validator("created_at", mode="after")
    @classmethod
    def _created_at_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)
