"""Project record persisted in the portfolio data file."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Optional

from dateutil import parser as date_parser

DEFAULT_IMAGE = "images/projects/default.webp"

_EPOCH = datetime.min.replace(tzinfo=UTC)


@dataclass(slots=True)
class ProjectRecord:
    """Portfolio-facing projection of a repository.

    `to_dict()` yields exactly the object shape the website reads from
    `projects-data.js`.
    """

    name: str
    title: str
    description: dict[str, str]
    date: str
    image: str = DEFAULT_IMAGE
    topics: list[str] = field(default_factory=list)
    html_url: str = ""
    homepage: Optional[str] = None
    stars: int = 0
    language: str = "Unknown"
    updated: Optional[str] = None

    @property
    def primary_description(self) -> str:
        if "en" in self.description:
            return self.description["en"]
        return next(iter(self.description.values()), "")

    @property
    def year(self) -> int:
        try:
            return int(str(self.date)[:4])
        except (TypeError, ValueError):
            return 0

    @property
    def updated_at(self) -> datetime:
        return parse_timestamp(self.updated)

    def is_owned_by(self, username: str) -> bool:
        if not username:
            return False
        return f"github.com/{username.lower()}/" in self.html_url.lower()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "title": self.title,
            "description": dict(self.description),
            "date": self.date,
            "image": self.image,
            "topics": list(self.topics),
            "html_url": self.html_url,
            "homepage": self.homepage,
            "stars": self.stars,
            "language": self.language,
            "updated": self.updated,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ProjectRecord":
        """Build a record from persisted JSON, tolerating older record shapes."""

        name = str(payload.get("name") or "").strip()
        if not name:
            raise ValueError("Project record missing name")

        raw_description = payload.get("description")
        if isinstance(raw_description, dict):
            description = {str(k): str(v) for k, v in raw_description.items() if isinstance(v, str)}
        elif isinstance(raw_description, str):
            description = {"en": raw_description}
        else:
            description = {}
        if not description:
            description = {"en": ""}

        topics = payload.get("topics") if isinstance(payload.get("topics"), list) else []
        stars = payload.get("stars")

        return cls(
            name=name,
            title=str(payload.get("title") or name),
            description=description,
            date=str(payload.get("date") or ""),
            image=str(payload.get("image") or DEFAULT_IMAGE),
            topics=[str(topic) for topic in topics],
            html_url=str(payload.get("html_url") or ""),
            homepage=payload.get("homepage") if isinstance(payload.get("homepage"), str) else None,
            stars=stars if isinstance(stars, int) and not isinstance(stars, bool) else 0,
            language=str(payload.get("language") or "Unknown"),
            updated=payload.get("updated") if isinstance(payload.get("updated"), str) else None,
        )


def parse_timestamp(raw: Any) -> datetime:
    """Parse an ISO timestamp; unknown values sort before everything else."""

    if isinstance(raw, datetime):
        return raw if raw.tzinfo else raw.replace(tzinfo=UTC)
    if isinstance(raw, str) and raw.strip():
        try:
            value = date_parser.isoparse(raw.strip())
        except (TypeError, ValueError):
            return _EPOCH
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    return _EPOCH
