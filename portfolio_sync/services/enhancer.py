"""Title and description enhancement for portfolio cards"""

import logging
import re
from typing import List, Optional, Sequence

from portfolio_sync.config.settings import settings
from portfolio_sync.crawlers.github.client import sanitize_log_extra
from portfolio_sync.models.verdicts import SOURCE_HEURISTIC, SOURCE_LLM, EnhancedText
from portfolio_sync.services.llm import LLMClient

logger = logging.getLogger(__name__)

_YEAR_RANGE = re.compile(r"(?<!\d)\d{4}-\d{4}(?!\d)")
_PROJECT_ORDINAL = re.compile(r"(?<![a-z])project[-_ ]?\d+(?!\d)", re.IGNORECASE)
_TEAM_ORDINAL = re.compile(r"(?<![a-z])team[-_ ]?\d+(?!\d)", re.IGNORECASE)
_SEPARATORS = re.compile(r"[-_.\s]+")
_LEADING_ARTICLE = re.compile(r"^(a|an|the)\s+", re.IGNORECASE)
_TRAILING_PUNCTUATION = ".,;:!?-"

SYSTEM_PROMPT = (
    "You write short, professional titles and descriptions for projects on a developer portfolio. "
    "Respond with JSON only."
)


def _title_case(words: Sequence[str]) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in words if word)


def format_title(name: str, description: Optional[str] = None) -> str:
    """
    Turn a repository name into a display title

    Drops year ranges and project/team ordinals, converts separators to
    spaces and capitalizes words. A single leftover word found in a short
    description phrase expands to that phrase.
    """
    cleaned = _YEAR_RANGE.sub(" ", name or "")
    cleaned = _PROJECT_ORDINAL.sub(" ", cleaned)
    cleaned = _TEAM_ORDINAL.sub(" ", cleaned)
    words = [word for word in _SEPARATORS.split(cleaned) if word]

    if not words:
        words = [word for word in _SEPARATORS.split(name or "") if word]

    if len(words) == 1 and description:
        phrase = _LEADING_ARTICLE.sub("", description.strip()).rstrip(_TRAILING_PUNCTUATION)
        phrase_words = phrase.split()
        if 0 < len(phrase_words) <= 5 and words[0].lower() in (w.lower() for w in phrase_words):
            return _title_case(phrase_words)

    return _title_case(words)


def truncate(text: str, limit: int) -> str:
    """Cut on a word boundary and append '...' when over the limit."""
    text = " ".join((text or "").split())
    if len(text) <= limit:
        return text
    if limit <= 3:
        return text[:limit]

    cut = text[: limit - 3]
    boundary = cut.rfind(" ")
    if boundary > 0:
        cut = cut[:boundary]
    return cut.rstrip(_TRAILING_PUNCTUATION + " ") + "..."


def fallback_description(
    description: Optional[str],
    topics: Sequence[str] = (),
    language: Optional[str] = None,
) -> str:
    if description and description.strip():
        return description.strip()
    focus = ", ".join(list(topics)[:2]) or "development"
    return f"A {language or 'software'} project focusing on {focus}"


class DescriptionEnhancer:
    """Service to produce clean portfolio titles and descriptions"""

    def __init__(
        self,
        llm: Optional[LLMClient] = None,
        *,
        title_max_chars: Optional[int] = None,
        description_max_chars: Optional[int] = None,
    ):
        self.llm = llm
        self.title_max_chars = title_max_chars if title_max_chars is not None else settings.TITLE_MAX_CHARS
        self.description_max_chars = (
            description_max_chars if description_max_chars is not None else settings.DESCRIPTION_MAX_CHARS
        )

    async def enhance(
        self,
        name: str,
        description: Optional[str],
        topics: Sequence[str] = (),
        language: Optional[str] = None,
    ) -> EnhancedText:
        """
        Generate a display title and short description

        Args:
            name: Repository name
            description: Repository or README description, if any
            topics: Repository topics
            language: Primary language

        Returns:
            EnhancedText within the configured length limits
        """
        if self.llm is not None and self.llm.is_available:
            try:
                payload = await self.llm.complete_json(
                    system=SYSTEM_PROMPT,
                    prompt=self._build_prompt(name, description, topics, language),
                    temperature=0.4,
                    max_tokens=200,
                )
            except Exception as exc:
                logger.warning(
                    "Enhancement LLM call failed, using formatted name",
                    extra=sanitize_log_extra(repository=name, error=str(exc)),
                )
                payload = None

            enhanced = self._parse_response(payload)
            if enhanced is not None:
                return enhanced

        return self.fallback(name, description, topics, language)

    def fallback(
        self,
        name: str,
        description: Optional[str],
        topics: Sequence[str] = (),
        language: Optional[str] = None,
    ) -> EnhancedText:
        return EnhancedText(
            title=truncate(format_title(name, description), self.title_max_chars),
            description=truncate(fallback_description(description, topics, language), self.description_max_chars),
            source=SOURCE_HEURISTIC,
        )

    def _parse_response(self, payload: Optional[dict]) -> Optional[EnhancedText]:
        if not payload:
            return None
        title = payload.get("title")
        description = payload.get("description")
        if not isinstance(title, str) or not title.strip():
            return None
        if not isinstance(description, str) or not description.strip():
            return None
        return EnhancedText(
            title=truncate(title.strip(), self.title_max_chars),
            description=truncate(description.strip(), self.description_max_chars),
            source=SOURCE_LLM,
        )

    def _build_prompt(
        self,
        name: str,
        description: Optional[str],
        topics: Sequence[str],
        language: Optional[str],
    ) -> str:
        topic_list: List[str] = list(topics)
        return f"""Improve this project's presentation for a portfolio card.

Repository name: {name}
Current description: {description or "No description"}
Topics: {", ".join(topic_list) or "none"}
Language: {language or "Unknown"}

Requirements:
1. Title: clean and professional, at most {self.title_max_chars} characters.
   Remove repository artifacts such as years (2023-2024), "project-3", "team-2",
   dashes and underscores.
2. Description: 1-2 action-oriented sentences, at most {self.description_max_chars} characters,
   saying what the project does.

Respond in JSON format:
{{
  "title": "Project Title",
  "description": "What the project does."
}}"""
