"""Portfolio relevance classification for candidate repositories"""

import logging
from typing import Optional

from portfolio_sync.crawlers.github.client import sanitize_log_extra
from portfolio_sync.models.candidate import CandidateRepository
from portfolio_sync.models.verdicts import SOURCE_HEURISTIC, SOURCE_LLM, RelevanceVerdict
from portfolio_sync.services.llm import LLMClient

logger = logging.getLogger(__name__)

CONFIG_NAME_MARKERS = ("config", "dotfiles", "settings")
CONFIG_DESCRIPTION_MARKERS = ("my personal", "configuration", "dotfiles")

SYSTEM_PROMPT = (
    "You decide whether a GitHub repository belongs on a developer's portfolio website. "
    "Respond with JSON only."
)


class RelevanceClassifier:
    """Decide if a repository is portfolio material.

    Uses the LLM when one is configured and falls back to name/description
    heuristics whenever the model is missing, fails, or answers garbage.
    """

    def __init__(self, llm: Optional[LLMClient] = None):
        self.llm = llm

    async def classify(self, candidate: CandidateRepository, owner: str) -> RelevanceVerdict:
        if self.llm is not None and self.llm.is_available:
            try:
                payload = await self.llm.complete_json(
                    system=SYSTEM_PROMPT,
                    prompt=self._build_prompt(candidate, owner),
                    temperature=0.1,
                    max_tokens=150,
                )
            except Exception as exc:
                logger.warning(
                    "Relevance LLM call failed, using heuristics",
                    extra=sanitize_log_extra(repository=candidate.full_name, error=str(exc)),
                )
                payload = None

            verdict = self._parse_verdict(payload)
            if verdict is not None:
                return verdict

        return self.heuristic(candidate, owner)

    @staticmethod
    def heuristic(candidate: CandidateRepository, owner: str) -> RelevanceVerdict:
        """Rule-based decision, applied in order; first match wins."""

        name = candidate.name.lower()
        description = (candidate.description or "").lower()

        if owner and name == owner.lower():
            return RelevanceVerdict(False, "Profile README", SOURCE_HEURISTIC)

        if any(marker in name for marker in CONFIG_NAME_MARKERS) or any(
            marker in description for marker in CONFIG_DESCRIPTION_MARKERS
        ):
            return RelevanceVerdict(False, "Configuration repository", SOURCE_HEURISTIC)

        if not description and not candidate.topics and candidate.stars == 0:
            return RelevanceVerdict(False, "No description, topics, or activity", SOURCE_HEURISTIC)

        return RelevanceVerdict(True, "Appears to be a project", SOURCE_HEURISTIC)

    @staticmethod
    def _parse_verdict(payload: Optional[dict]) -> Optional[RelevanceVerdict]:
        if not payload:
            return None
        is_relevant = payload.get("isRelevant")
        if not isinstance(is_relevant, bool):
            return None
        reason = str(payload.get("reason") or ("Relevant project" if is_relevant else "Not a project"))
        return RelevanceVerdict(is_relevant, reason, SOURCE_LLM)

    @staticmethod
    def _build_prompt(candidate: CandidateRepository, owner: str) -> str:
        topics = ", ".join(candidate.topics) or "none"
        return f"""Repository owner's GitHub username: {owner}

Repository:
- Name: {candidate.name}
- Full name: {candidate.full_name}
- Description: {candidate.description or "No description"}
- Topics: {topics}
- Language: {candidate.language or "Unknown"}
- Stars: {candidate.stars}
- Fork: {candidate.fork}

EXCLUDE the repository if it is:
1. The profile README repository (its name equals the username)
2. Dotfiles or configuration-only (editor settings, shell config)
3. Personal notes or documentation with no project behind them
4. Empty or placeholder repositories
5. A trivial hello-world or tutorial follow-along

INCLUDE real projects: applications, libraries, tools, school or hackathon
projects, experiments with actual code. When in doubt, include it.

Respond in JSON format:
{{
  "isRelevant": true or false,
  "reason": "brief explanation"
}}"""
