"""Typed fetch results returned by the GitHub client."""

from __future__ import annotations

from dataclasses import dataclass
import enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class FetchState(str, enum.Enum):
    OK = "ok"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass(slots=True)
class FetchResult(Generic[T]):
    """Outcome of a single GitHub API request."""

    state: FetchState
    data: Optional[T] = None
    status_code: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state == FetchState.OK
