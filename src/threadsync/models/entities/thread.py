"""
Thread and topic models.

A thread is a conversation between a participant and an agent workflow
instance. Topics (scopes) partition a thread's messages into
sub-conversations; the server reports them as TopicSummary rows.
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from ...utils.date_utils import ensure_utc
from ..core import WIRE_CONFIG, CoreModel


class Thread(CoreModel):
    """Conversation thread metadata."""

    participant_id: str | None = Field(default=None, description="Participant (sender) id")
    workflow_type: str | None = Field(default=None, description="Agent workflow type")
    workflow_id: str | None = Field(
        default=None, description="Workflow instance id, None for singleton workflows"
    )
    agent: str | None = Field(default=None, description="Agent name")
    status: str | None = None
    updated_at: datetime | None = Field(default=None, description="Last activity")

    @field_validator("updated_at", mode="after")
    @classmethod
    def _updated_at_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None

    @property
    def can_send(self) -> bool:
        """Thread carries what the inbound endpoints need."""
        return bool(self.participant_id) and bool(self.workflow_type)


class TopicSummary(BaseModel):
    """Per-topic message statistics for one thread."""

    model_config = WIRE_CONFIG

    scope: str | None = Field(default=None, description="Topic name, None for no topic")
    message_count: int = Field(default=0, ge=0)
    last_message_at: datetime | None = None

    @field_validator("last_message_at", mode="after")
    @classmethod
    def _last_message_at_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None
