from __future__ import annotations

from typing import Any

import pytest


class DummyEngine:
    def __init__(self, candidates: Any) -> None:
        self.candidates = candidates
        self.calls: list[Any] = []

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self.calls.append(arg)
        return self.candidates

    async def find_all(self, selector: str) -> list[Any]:
        return []

    async def dispose(self) -> None:
        return None


def test_text_similarity_tiers() -> None:
    from mcp_servers.browser_reliability.diagnostics.discovery import text_similarity

    assert text_similarity("Submit", " submit ") == 1.0
    assert text_similarity("Sign", "Sign in now") == 0.8
    assert text_similarity("Sign in now", "Sign") == 0.6
    assert text_similarity("", "x") == 0.0
    assert text_similarity("kitten", "sitting") == pytest.approx(1 - 3 / 7)


def test_score_candidate_collects_every_match_kind() -> None:
    from mcp_servers.browser_reliability.diagnostics.discovery import SearchCriteria, score_candidate

    candidate = {
        "selector": "button#go",
        "tagName": "BUTTON",
        "text": "Go",
        "attributes": {"data-test": "go"},
    }
    criteria = SearchCriteria(text="go", role="button", tag_name="button", attributes={"data-test": "go"})
    reasons = {alt.reason.split(":")[0]: alt.confidence for alt in score_candidate(candidate, criteria)}

    assert reasons["text match"] == 1.0
    assert reasons["implicit role match"] == 0.6
    assert reasons["tag name match"] == 0.5
    assert reasons["attribute match"] == 0.9


def test_score_candidate_skips_weak_text_and_missing_selector() -> None:
    from mcp_servers.browser_reliability.diagnostics.discovery import SearchCriteria, score_candidate

    criteria = SearchCriteria(text="checkout")
    assert score_candidate({"selector": "a", "text": "zzz"}, criteria) == []
    assert score_candidate({"text": "checkout"}, criteria) == []


def test_deduplicate_keeps_highest_confidence() -> None:
    from mcp_servers.browser_reliability.diagnostics.discovery import AlternativeElement, deduplicate_and_sort

    out = deduplicate_and_sort(
        [
            AlternativeElement("#a", 0.5, "tag"),
            AlternativeElement("#b", 0.7, "role"),
            AlternativeElement("#a", 0.9, "attr"),
        ]
    )
    assert [(a.selector, a.reason) for a in out] == [("#a", "attr"), ("#b", "role")]


def test_search_criteria_from_dict_accepts_camel_case() -> None:
    from mcp_servers.browser_reliability.diagnostics.discovery import SearchCriteria

    criteria = SearchCriteria.from_dict({"tagName": "input", "attributes": {"name": 1}})
    assert criteria.tag_name == "input"
    assert criteria.attributes == {"name": "1"}
    assert SearchCriteria.from_dict(None).is_empty()


@pytest.mark.asyncio
async def test_find_alternatives_ranks_and_limits() -> None:
    from mcp_servers.browser_reliability.config import ConfigurationManager
    from mcp_servers.browser_reliability.diagnostics.discovery import ElementDiscovery, SearchCriteria

    engine = DummyEngine(
        [
            {"selector": "#save", "tagName": "button", "text": "Save"},
            {"selector": "#save-all", "tagName": "button", "text": "Save all"},
            {"selector": "#cancel", "tagName": "button", "text": "Cancel"},
            "garbage",
        ]
    )
    discovery = ElementDiscovery(engine, ConfigurationManager())

    found = await discovery.find_alternatives(SearchCriteria(text="Save", role="button"), max_results=2)

    assert [a.selector for a in found] == ["#save", "#save-all"]
    assert found[0].confidence == 1.0
    assert engine.calls[0]["limit"] == 500


@pytest.mark.asyncio
async def test_find_alternatives_empty_criteria_and_dispose() -> None:
    from mcp_servers.browser_reliability.config import ConfigurationManager
    from mcp_servers.browser_reliability.diagnostics.discovery import ElementDiscovery, SearchCriteria
    from mcp_servers.browser_reliability.errors import DisposedStateError

    engine = DummyEngine([])
    discovery = ElementDiscovery(engine, ConfigurationManager())
    assert await discovery.find_alternatives(SearchCriteria()) == []
    assert engine.calls == []

    await discovery.dispose()
    with pytest.raises(DisposedStateError):
        await discovery.find_alternatives(SearchCriteria(text="x"))
