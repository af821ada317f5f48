from __future__ import annotations

import pytest

from portfolio_sync.models.candidate import CandidateRepository
from portfolio_sync.models.verdicts import SOURCE_HEURISTIC, SOURCE_LLM
from portfolio_sync.services.llm import LLMClient
from portfolio_sync.services.relevance import RelevanceClassifier

OWNER = "gderamchi"


def candidate(name: str, **fields) -> CandidateRepository:
    return CandidateRepository(id=1, name=name, full_name=f"{OWNER}/{name}", owner_login=OWNER, **fields)


def fake_llm(response: str | Exception) -> LLMClient:
    async def call(system: str, prompt: str, temperature: float, max_tokens: int) -> str:
        if isinstance(response, Exception):
            raise response
        return response

    return LLMClient(llm_call=call, max_attempts=1, backoff_base_seconds=0)


@pytest.mark.asyncio
async def test_profile_readme_is_rejected_by_fallback() -> None:
    verdict = await RelevanceClassifier().classify(candidate("GDeramchi"), OWNER)

    assert verdict.is_relevant is False
    assert verdict.reason == "Profile README"
    assert verdict.source == SOURCE_HEURISTIC


def test_configuration_repositories_are_rejected() -> None:
    by_name = RelevanceClassifier.heuristic(candidate("nvim-config", description="Editor setup"), OWNER)
    by_description = RelevanceClassifier.heuristic(candidate("setup", description="My personal machine"), OWNER)

    assert (by_name.is_relevant, by_name.reason) == (False, "Configuration repository")
    assert (by_description.is_relevant, by_description.reason) == (False, "Configuration repository")


def test_repositories_without_signals_are_rejected() -> None:
    verdict = RelevanceClassifier.heuristic(candidate("scratch"), OWNER)

    assert verdict.is_relevant is False
    assert verdict.reason == "No description, topics, or activity"


def test_repository_with_description_is_accepted() -> None:
    widget = candidate(
        "2023-2024-project-3-widget-team-2",
        description="A widget simulator",
        topics=("c", "cmake"),
    )

    verdict = RelevanceClassifier.heuristic(widget, OWNER)

    assert verdict.is_relevant is True
    assert verdict.reason == "Appears to be a project"


@pytest.mark.asyncio
async def test_llm_verdict_is_used_when_parseable() -> None:
    classifier = RelevanceClassifier(fake_llm('```json\n{"isRelevant": false, "reason": "Tutorial follow-along"}\n```'))

    verdict = await classifier.classify(candidate("react-tutorial", description="Learning React"), OWNER)

    assert verdict.is_relevant is False
    assert verdict.reason == "Tutorial follow-along"
    assert verdict.source == SOURCE_LLM


@pytest.mark.asyncio
async def test_llm_garbage_or_failure_falls_back_to_heuristics() -> None:
    repo = candidate("ray-tracer", description="Ray tracer in Rust")

    garbage = await RelevanceClassifier(fake_llm("I think so!")).classify(repo, OWNER)
    failure = await RelevanceClassifier(fake_llm(RuntimeError("timeout"))).classify(repo, OWNER)
    wrong_type = await RelevanceClassifier(fake_llm('{"isRelevant": "yes"}')).classify(repo, OWNER)

    for verdict in (garbage, failure, wrong_type):
        assert verdict.is_relevant is True
        assert verdict.source == SOURCE_HEURISTIC
