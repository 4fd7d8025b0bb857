from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from quizcraft.models.schemas import GeneratedItem


@dataclass(frozen=True, slots=True)
class JobDescriptor:
    """One unit of work in a fan-out batch; `key` is unique within the batch."""

    key: str
    params: Mapping[str, Any] = field(default_factory=dict)
    group_key: str = ""
    parent_id: str | None = None

    def __post_init__(self) -> None:
        if not self.key:
            raise ValueError("JobDescriptor key must be non-empty")
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))

    def request_body(self) -> dict[str, Any]:
        return dict(self.params)


@dataclass(frozen=True, slots=True)
class ProgressEntry:
    percent: int = 0
    status: str = "pending"

    def __post_init__(self) -> None:
        if not 0 <= self.percent <= 100:
            raise ValueError(f"percent out of range: {self.percent}")


@dataclass(slots=True)
class JobResult:
    key: str
    success: bool
    items: list[GeneratedItem] = field(default_factory=list)
    raw_prompt: str = ""
    error: str | None = None
    failure_kind: str | None = None

    @classmethod
    def failed(cls, key: str, error: str, *, kind: str) -> "JobResult":
        return cls(key=key, success=False, error=error, failure_kind=kind)


@dataclass(slots=True)
class AggregateBatch:
    items: list[GeneratedItem] = field(default_factory=list)
    success_count: int = 0
    failure_count: int = 0
    first_prompt: str = ""
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.success_count + self.failure_count

    @property
    def all_failed(self) -> bool:
        return self.success_count == 0
