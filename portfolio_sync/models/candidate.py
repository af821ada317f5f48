"""Candidate repository as discovered on GitHub."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True, slots=True)
class CandidateRepository:
    """Raw repository record, immutable for the duration of a sync run."""

    id: Optional[int]
    name: str
    full_name: str
    owner_login: str
    description: Optional[str] = None
    topics: tuple[str, ...] = ()
    language: Optional[str] = None
    stars: int = 0
    fork: bool = False
    contributed: bool = False
    organization: Optional[str] = None
    homepage: Optional[str] = None
    html_url: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    pushed_at: Optional[str] = None

    @classmethod
    def from_payload(
        cls,
        payload: dict[str, Any],
        *,
        contributed: bool = False,
        organization: Optional[str] = None,
    ) -> "CandidateRepository":
        full_name = str(payload.get("full_name") or "").strip()
        name = str(payload.get("name") or full_name.split("/")[-1]).strip()
        if not name:
            raise ValueError("Repository payload missing both name and full_name")

        owner = payload.get("owner") if isinstance(payload.get("owner"), dict) else {}
        owner_login = str(owner.get("login") or (full_name.split("/")[0] if "/" in full_name else "")).strip()
        topics = payload.get("topics") if isinstance(payload.get("topics"), list) else []
        stars = payload.get("stargazers_count")
        repo_id = payload.get("id")

        return cls(
            id=repo_id if isinstance(repo_id, int) else None,
            name=name,
            full_name=full_name or f"{owner_login}/{name}",
            owner_login=owner_login,
            description=_clean_text(payload.get("description")),
            topics=tuple(str(topic).strip() for topic in topics if str(topic).strip()),
            language=_clean_text(payload.get("language")),
            stars=max(stars, 0) if isinstance(stars, int) and not isinstance(stars, bool) else 0,
            fork=bool(payload.get("fork") or False),
            contributed=contributed,
            organization=organization,
            homepage=_clean_text(payload.get("homepage")),
            html_url=str(payload.get("html_url") or f"https://github.com/{full_name or name}"),
            created_at=_clean_text(payload.get("created_at")),
            updated_at=_clean_text(payload.get("updated_at")),
            pushed_at=_clean_text(payload.get("pushed_at")),
        )

    @property
    def identity(self) -> str:
        """Stable key used when merging candidate sets."""
        if self.id is not None:
            return f"github:{self.id}"
        return f"github:{self.full_name.lower()}"

    def is_owned_by(self, username: str) -> bool:
        return bool(username) and self.owner_login.lower() == username.lower()


@dataclass(slots=True)
class RepositoryDetails:
    """README-derived description, language breakdown and content shape."""

    readme_description: str = ""
    languages: list[str] = field(default_factory=list)
    is_documentation_only: Optional[bool] = None


def _clean_text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None
