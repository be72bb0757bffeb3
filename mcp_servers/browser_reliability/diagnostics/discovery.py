"""Alternative-target discovery for failed element lookups."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..errors import ComponentKind, DisposedStateError
from .scripts import CANDIDATE_SCAN_SCRIPT

if TYPE_CHECKING:
    from ..config import ConfigurationManager
    from ..engine import AutomationEngine

logger = logging.getLogger("mcp.reliability.enrichment")

MAX_SCAN = 500
MAX_BATCH_SIZE = 100
TEXT_MIN_CONFIDENCE = 0.3

ROLE_CONFIDENCE = 0.7
IMPLICIT_ROLE_CONFIDENCE = 0.6
TAG_CONFIDENCE = 0.5
ATTRIBUTE_CONFIDENCE = 0.9

_IMPLICIT_ROLE_TAGS: dict[str, tuple[str, ...]] = {
    "button": ("button",),
    "link": ("a",),
    "textbox": ("input", "textarea"),
    "checkbox": ("input",),
    "radio": ("input",),
    "combobox": ("select",),
    "listbox": ("select",),
    "heading": ("h1", "h2", "h3", "h4", "h5", "h6"),
    "img": ("img",),
    "list": ("ul", "ol"),
    "listitem": ("li",),
    "navigation": ("nav",),
    "table": ("table",),
}


@dataclass(frozen=True)
class SearchCriteria:
    text: str | None = None
    role: str | None = None
    tag_name: str | None = None
    attributes: dict[str, str] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (self.text or self.role or self.tag_name or self.attributes)

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> SearchCriteria:
        raw = raw or {}
        attrs = raw.get("attributes") if isinstance(raw.get("attributes"), dict) else {}
        return cls(
            text=raw.get("text") or None,
            role=raw.get("role") or None,
            tag_name=raw.get("tag_name") or raw.get("tagName") or None,
            attributes={str(k): str(v) for k, v in attrs.items()},
        )


@dataclass(frozen=True)
class AlternativeElement:
    selector: str
    confidence: float
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {"selector": self.selector, "confidence": round(self.confidence, 3), "reason": self.reason}


def levenshtein(a: str, b: str) -> int:
    if not a:
        return len(b)
    if not b:
        return len(a)
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        cur = [i]
        for j, cb in enumerate(b, start=1):
            cur.append(min(cur[j - 1] + 1, prev[j] + 1, prev[j - 1] + (ca != cb)))
        prev = cur
    return prev[-1]


def text_similarity(target: str, candidate: str) -> float:
    t = (target or "").strip().lower()
    c = (candidate or "").strip().lower()
    if not t or not c:
        return 0.0
    if t == c:
        return 1.0
    if t in c:
        return 0.8
    if c in t:
        return 0.6
    return 1.0 - levenshtein(t, c) / max(len(t), len(c))


def score_candidate(candidate: dict[str, Any], criteria: SearchCriteria) -> list[AlternativeElement]:
    """All matches one scanned element contributes (deduplicated later)."""
    selector = str(candidate.get("selector") or "")
    if not selector:
        return []
    tag = str(candidate.get("tagName") or "").lower()
    out: list[AlternativeElement] = []

    if criteria.text:
        pieces = [candidate.get(k) or "" for k in ("text", "value", "placeholder", "ariaLabel")]
        element_text = " ".join(str(p) for p in pieces).strip()
        confidence = text_similarity(criteria.text, element_text)
        if confidence > TEXT_MIN_CONFIDENCE:
            out.append(AlternativeElement(selector, confidence, f'text match: "{element_text[:50].strip()}"'))

    if criteria.role:
        if candidate.get("role") == criteria.role:
            out.append(AlternativeElement(selector, ROLE_CONFIDENCE, f'role match: "{criteria.role}"'))
        elif tag in _IMPLICIT_ROLE_TAGS.get(criteria.role, ()):
            out.append(
                AlternativeElement(
                    selector,
                    IMPLICIT_ROLE_CONFIDENCE,
                    f'implicit role match: "{criteria.role}" via {tag}',
                )
            )

    if criteria.tag_name and tag == criteria.tag_name.lower():
        out.append(AlternativeElement(selector, TAG_CONFIDENCE, f'tag name match: "{criteria.tag_name}"'))

    attrs = candidate.get("attributes") if isinstance(candidate.get("attributes"), dict) else {}
    for name, expected in criteria.attributes.items():
        if attrs.get(name) == expected:
            out.append(AlternativeElement(selector, ATTRIBUTE_CONFIDENCE, f'attribute match: {name}="{expected}"'))
    return out


def deduplicate_and_sort(alternatives: list[AlternativeElement]) -> list[AlternativeElement]:
    """Keep the best-scoring entry per selector, highest confidence first."""
    best: dict[str, AlternativeElement] = {}
    for alt in alternatives:
        cur = best.get(alt.selector)
        if cur is None or alt.confidence > cur.confidence:
            best[alt.selector] = alt
    return sorted(best.values(), key=lambda a: a.confidence, reverse=True)


class ElementDiscovery:
    """Finds elements resembling a failed target using one page-side scan."""

    def __init__(self, engine: AutomationEngine, config: ConfigurationManager) -> None:
        self._engine = engine
        self._config = config
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    async def find_alternatives(
        self,
        criteria: SearchCriteria,
        max_results: int | None = None,
    ) -> list[AlternativeElement]:
        if self._disposed:
            raise DisposedStateError("ElementDiscovery")
        if criteria.is_empty():
            return []
        limit = max_results
        if limit is None:
            limit = int(self._config.get_component_config(ComponentKind.ELEMENT_DISCOVERY).flags["max_alternatives"])
        limit = max(0, min(limit, MAX_BATCH_SIZE))

        raw = await self._engine.evaluate(
            CANDIDATE_SCAN_SCRIPT,
            {"limit": MAX_SCAN, "attributes": dict(criteria.attributes)},
        )
        candidates = raw if isinstance(raw, list) else []
        scored: list[AlternativeElement] = []
        for candidate in candidates:
            if isinstance(candidate, dict):
                scored.extend(score_candidate(candidate, criteria))
        logger.debug("Alternative scan: %d candidates, %d matches", len(candidates), len(scored))
        return deduplicate_and_sort(scored)[:limit]

    async def dispose(self) -> None:
        self._disposed = True


__all__ = [
    "AlternativeElement",
    "ElementDiscovery",
    "SearchCriteria",
    "deduplicate_and_sort",
    "levenshtein",
    "score_candidate",
    "text_similarity",
]
