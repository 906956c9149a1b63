"""
Topic (scope) selection and filtering.

A selection has four distinct meanings, and all four must survive a round
trip through the UI and the API:

    ScopeSelection.unfiltered()   every topic is visible
    ScopeSelection.no_topic()     only messages whose scope is None
    ScopeSelection.empty_topic()  only messages whose scope is ""
    ScopeSelection.named("S")     only messages whose scope is "S"

``None`` and ``""`` are different topics. Never test a scope for truthiness.

UI code that still speaks in raw values can use ``ScopeSelection.from_value``
with the ``UNSET`` sentinel standing for "no filter".
"""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ...models import Message


class _Unset:
    """Sentinel for "no scope filter requested"."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


class ScopeKind(str, Enum):
    UNFILTERED = "unfiltered"
    NO_TOPIC = "no_topic"
    EMPTY_TOPIC = "empty_topic"
    NAMED = "named"


@dataclass(frozen=True)
class ScopeSelection:
    """Discriminated topic selection. ``name`` is set only for NAMED."""

    kind: ScopeKind
    name: str | None = None

    def __post_init__(self) -> None:
        if self.kind == ScopeKind.NAMED:
            if not isinstance(self.name, str) or self.name == "":
                raise ValueError("Named scope requires a non-empty topic name")
        elif self.name is not None:
            raise ValueError(f"{self.kind.value} scope does not take a name")

    @classmethod
    def unfiltered(cls) -> "ScopeSelection":
        return cls(ScopeKind.UNFILTERED)

    @classmethod
    def no_topic(cls) -> "ScopeSelection":
        return cls(ScopeKind.NO_TOPIC)

    @classmethod
    def empty_topic(cls) -> "ScopeSelection":
        return cls(ScopeKind.EMPTY_TOPIC)

    @classmethod
    def named(cls, name: str) -> "ScopeSelection":
        return cls(ScopeKind.NAMED, name)

    @classmethod
    def from_value(cls, value: Any = UNSET) -> "ScopeSelection":
        """
        Convert a raw selection value.

        Args:
            value: UNSET (no filter), None (no topic), "" (empty topic) or a
                topic name. An existing ScopeSelection is returned as-is.
        """
        if isinstance(value, ScopeSelection):
            return value
        if value is UNSET:
            return cls.unfiltered()
        if value is None:
            return cls.no_topic()
        if not isinstance(value, str):
            raise TypeError(f"Scope must be a string, None or UNSET, got {type(value).__name__}")
        if value == "":
            return cls.empty_topic()
        return cls.named(value)

    @classmethod
    def for_scope(cls, scope: str | None) -> "ScopeSelection":
        """Selection that shows exactly the topic ``scope`` belongs to."""
        return cls.from_value(scope)

    @property
    def is_unfiltered(self) -> bool:
        return self.kind == ScopeKind.UNFILTERED

    @property
    def scope_value(self) -> str | None:
        """
        Topic a message sent under this selection belongs to.

        Unfiltered and no-topic both send to the default topic (None).
        """
        if self.kind == ScopeKind.NAMED:
            return self.name
        if self.kind == ScopeKind.EMPTY_TOPIC:
            return ""
        return None

    def matches(self, message: Message) -> bool:
        """Does ``message`` belong to this selection?"""
        scope = message.scope
        if self.kind == ScopeKind.UNFILTERED:
            return True
        if self.kind == ScopeKind.NO_TOPIC:
            return scope is None
        if self.kind == ScopeKind.EMPTY_TOPIC:
            return scope == ""
        return scope == self.name

    def query_params(self) -> dict[str, str]:
        """History query parameters for this selection."""
        if self.kind == ScopeKind.UNFILTERED:
            return {}
        if self.kind == ScopeKind.NO_TOPIC:
            return {"noScope": "true"}
        if self.kind == ScopeKind.EMPTY_TOPIC:
            return {"scope": ""}
        return {"scope": self.name or ""}

    def label(self) -> str:
        if self.kind == ScopeKind.UNFILTERED:
            return "All Topics"
        if self.kind == ScopeKind.NO_TOPIC:
            return "No Topic"
        if self.kind == ScopeKind.EMPTY_TOPIC:
            return "Empty Topic"
        return self.name or ""


def filter_messages(messages: Iterable[Message], selection: ScopeSelection) -> list[Message]:
    """Messages visible under ``selection``, order preserved."""
    if selection.is_unfiltered:
        return list(messages)
    return [message for message in messages if selection.matches(message)]
