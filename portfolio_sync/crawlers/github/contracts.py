"""Typed fetch contracts shared by the GitHub client and its callers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class FetchState(str, Enum):
    """Outcome of a single GitHub API call."""

    OK = "ok"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass(slots=True)
class FetchResult(Generic[T]):
    """Result envelope; HTTP failures are reported here instead of raised."""

    state: FetchState
    data: Optional[T] = None
    status_code: Optional[int] = None
    error: Optional[str] = None
    has_next_page: bool = False

    @property
    def is_ok(self) -> bool:
        return self.state == FetchState.OK

    @property
    def is_empty(self) -> bool:
        return self.state == FetchState.EMPTY

    @property
    def is_failed(self) -> bool:
        return self.state == FetchState.FAILED


RepoContract = FetchResult[dict[str, Any]]
RepoListContract = FetchResult[list[dict[str, Any]]]
ContributorsContract = FetchResult[list[dict[str, Any]]]
LanguagesContract = FetchResult[dict[str, int]]
ContentListContract = FetchResult[list[dict[str, Any]]]
ReadmeContract = FetchResult[str]
