from __future__ import annotations

import pytest


class DummyAnalyzer:
    def __init__(self, snapshot=None, error: Exception | None = None) -> None:
        self.snapshot = snapshot
        self.error = error

    async def analyze_structure(self):
        from mcp_servers.browser_reliability.diagnostics.structure import StructureSnapshot

        if self.error is not None:
            raise self.error
        return self.snapshot or StructureSnapshot()


class DummyDiscovery:
    def __init__(self, found=None, error: Exception | None = None) -> None:
        self.found = found or []
        self.error = error
        self.disposed = False

    async def find_alternatives(self, criteria, max_results=None):
        if self.error is not None:
            raise self.error
        return list(self.found)

    async def dispose(self) -> None:
        self.disposed = True


def _blocked_snapshot():
    from mcp_servers.browser_reliability.diagnostics.structure import (
        ElementStats,
        IframeReport,
        ModalState,
        StructureSnapshot,
    )

    return StructureSnapshot(
        iframes=IframeReport(detected=True, count=1, inaccessible=({"src": "x", "reason": "blocked"},)),
        modal_states=ModalState(has_dialog=True, blocked_by=("dialog",)),
        elements=ElementStats(missing_aria=2),
    )


def test_generate_suggestions_patterns_and_context() -> None:
    from mcp_servers.browser_reliability.diagnostics.enrichment import generate_suggestions

    out = generate_suggestions("Operation timed out", selector="#main > li:nth-child(2)", execution_time=6000)
    assert out[0] == "Consider increasing timeout values"
    assert len(out) == 5
    assert "Long execution time detected - consider optimization" in out

    assert generate_suggestions("weird") == []


@pytest.mark.asyncio
async def test_enrich_not_found_lists_alternatives() -> None:
    from mcp_servers.browser_reliability.diagnostics.discovery import AlternativeElement, SearchCriteria
    from mcp_servers.browser_reliability.diagnostics.enrichment import EnrichedError, ErrorEnrichmentPipeline

    found = [AlternativeElement("#buy", 0.95, 'text match: "Buy"'), AlternativeElement("a.buy", 0.6, "x")]
    pipeline = ErrorEnrichmentPipeline(DummyAnalyzer(_blocked_snapshot()), DummyDiscovery(found))
    original = LookupError("Element not found: #purchase")

    enriched = await pipeline.enrich_not_found(original, "#purchase", SearchCriteria(text="Buy"))

    assert isinstance(enriched, EnrichedError)
    assert enriched.__cause__ is original
    lines = str(enriched).splitlines()
    assert lines[0] == "Element not found: #purchase"
    assert "Alternative elements found:" in lines
    assert lines[-2] == '1. #buy (confidence: 95%) - text match: "Buy"'
    assert enriched.suggestions[0] == "Try using one of the 2 alternative elements found"
    assert "High confidence match available: #buy" in enriched.suggestions
    assert "Element might be inside an iframe" in enriched.suggestions
    assert "Page has active modal dialog - handle it first" in enriched.suggestions
    assert len(enriched.suggestions) == len(set(enriched.suggestions))
    assert enriched.to_dict()["alternatives"][0]["selector"] == "#buy"


@pytest.mark.asyncio
async def test_enrich_not_found_without_criteria_skips_discovery() -> None:
    from mcp_servers.browser_reliability.diagnostics.enrichment import ErrorEnrichmentPipeline

    discovery = DummyDiscovery(error=AssertionError("must not be called"))
    pipeline = ErrorEnrichmentPipeline(DummyAnalyzer(), discovery)
    original = LookupError("Element not found: #x")

    enriched = await pipeline.enrich_not_found(original, "#x")

    assert str(enriched) == "Element not found: #x"
    assert enriched.alternatives == []


@pytest.mark.asyncio
async def test_collaborator_failure_returns_original_error() -> None:
    from mcp_servers.browser_reliability.diagnostics.discovery import SearchCriteria
    from mcp_servers.browser_reliability.diagnostics.enrichment import ErrorEnrichmentPipeline, ExecutedStep, FailedStep

    original = LookupError("Element not found: #x")
    broken_analyzer = ErrorEnrichmentPipeline(DummyAnalyzer(error=RuntimeError("page gone")), DummyDiscovery())
    broken_discovery = ErrorEnrichmentPipeline(DummyAnalyzer(), DummyDiscovery(error=RuntimeError("scan failed")))

    assert await broken_analyzer.enrich_not_found(original, "#x", SearchCriteria(text="x")) is original
    assert await broken_discovery.enrich_not_found(original, "#x", SearchCriteria(text="x")) is original
    assert await broken_analyzer.enrich_timeout(original, "click") is original
    assert (
        await broken_analyzer.enrich_batch_failure(original, FailedStep(0, "browser_click"), [ExecutedStep(0, "a", False)])
        is original
    )


@pytest.mark.asyncio
async def test_enrich_timeout_mentions_operation() -> None:
    from mcp_servers.browser_reliability.diagnostics.enrichment import ErrorEnrichmentPipeline

    pipeline = ErrorEnrichmentPipeline(DummyAnalyzer(_blocked_snapshot()), DummyDiscovery())
    enriched = await pipeline.enrich_timeout(TimeoutError("slow"), "click", "#btn")

    assert str(enriched) == "slow"
    assert "Page has active modal dialog - handle it before performing click" in enriched.suggestions
    assert enriched.suggestions[-1] == "Wait for page load completion before performing click"
    assert "Failed selector: #btn" in enriched.suggestions


@pytest.mark.asyncio
async def test_enrich_batch_failure_carries_context() -> None:
    from mcp_servers.browser_reliability.diagnostics.enrichment import ErrorEnrichmentPipeline, ExecutedStep, FailedStep

    pipeline = ErrorEnrichmentPipeline(DummyAnalyzer(_blocked_snapshot()), DummyDiscovery())
    executed = [ExecutedStep(0, "browser_navigate", True), ExecutedStep(1, "browser_click", False)]
    enriched = await pipeline.enrich_batch_failure(
        RuntimeError("click failed"),
        FailedStep(1, "browser_click", "#go"),
        executed,
    )

    assert enriched.suggestions[0] == "Batch execution failed at step 1 (browser_click)"
    assert "Modal dialog detected - may block subsequent operations" in enriched.suggestions
    ctx = enriched.to_dict()["batchContext"]
    assert ctx["failedStep"] == {"stepIndex": 1, "toolName": "browser_click", "selector": "#go"}
    assert [s["success"] for s in ctx["executedSteps"]] == [True, False]


@pytest.mark.asyncio
async def test_dispose_releases_discovery() -> None:
    from mcp_servers.browser_reliability.diagnostics.enrichment import ErrorEnrichmentPipeline

    discovery = DummyDiscovery()
    await ErrorEnrichmentPipeline(DummyAnalyzer(), discovery).dispose()
    assert discovery.disposed is True
