from __future__ import annotations

"""
Built-in pattern rules for the extraction fallback tier.

Each rule pairs a field predicate with an extractor. For a given field the first rule
whose predicate matches is the only one attempted; it yields at most one value with the
rule's fixed confidence.
"""

from datetime import date
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple
import re

from issue_autofill.models import FieldDescriptor
from issue_autofill.shared.config_loader import ExtractorSettings
from issue_autofill.shared.utils import current_quarter

PRIORITY_CONFIDENCE = 0.8
QUARTER_CONFIDENCE = 0.8
QUARTER_YEAR_CONFIDENCE = 0.6
QUARTER_CURRENT_CONFIDENCE = 0.4
ROADMAP_CONFIDENCE = 0.8
STORY_POINTS_CONFIDENCE = 0.9
COMPONENT_CONFIDENCE = 0.7
EPIC_CONFIDENCE = 0.8

PRIORITY_WORD_RE = re.compile(r"\b(highest|high|medium|low|lowest|critical|major|minor|trivial|urgent|blocker)\b")

# canonical level -> label candidates, most specific first
PRIORITY_SYNONYMS: Dict[str, List[str]] = {
    "highest": ["highest", "critical", "blocker", "1"],
    "high": ["high", "major", "urgent", "2"],
    "medium": ["medium", "normal", "3"],
    "low": ["low", "minor", "4"],
    "lowest": ["lowest", "trivial", "5"],
}

PRIORITY_LEVEL: Dict[str, str] = {
    "highest": "highest",
    "critical": "highest",
    "blocker": "highest",
    "high": "high",
    "major": "high",
    "urgent": "high",
    "medium": "medium",
    "low": "low",
    "minor": "low",
    "lowest": "lowest",
    "trivial": "lowest",
}

QUARTER_PATTERNS = [
    re.compile(r"\b(q[1-4])\s*(\d{4})\b", re.IGNORECASE),
    re.compile(r"\bquarter\s*([1-4])\s*(\d{4})\b", re.IGNORECASE),
    re.compile(r"\b([1-4])(?:st|nd|rd|th)\s*quarter\s*(\d{4})\b", re.IGNORECASE),
    re.compile(r"\b(first|second|third|fourth)\s*quarter\s*(\d{4})\b", re.IGNORECASE),
    re.compile(r"\b(q[1-4])\b", re.IGNORECASE),
    re.compile(r"\bquarter\s*([1-4])\b", re.IGNORECASE),
]
_QUARTER_WORDS = {"first": "1", "second": "2", "third": "3", "fourth": "4"}
_YEAR_RE = re.compile(r"\b(\d{4})\b")

INTERNAL_RE = re.compile(r"\b(internal|private|confidential|company|team|staff)\b")
EXTERNAL_RE = re.compile(r"\b(external|public|customer|client|visible|roadmap|showcase)\b")

STORY_POINTS_RE = re.compile(r"\b(\d+)\s*(?:story\s*)?points?\b", re.IGNORECASE)
ISSUE_KEY_RE = re.compile(r"\b([A-Z]+-\d+)\b")

# (value, confidence) or None
Hit = Optional[Tuple[Any, float]]


class RuleContext(NamedTuple):
    text: str
    lower: str
    today: date
    settings: ExtractorSettings


class PatternRule(NamedTuple):
    name: str
    applies: Callable[[FieldDescriptor, ExtractorSettings], bool]
    extract: Callable[[FieldDescriptor, RuleContext], Hit]


def _label_in(candidate: str, labels: List[str]) -> Optional[str]:
    for lb in labels:
        if lb == candidate:
            return lb
    low = candidate.lower()
    for lb in labels:
        if lb.lower() == low:
            return lb
    return None


def map_priority(word: str, labels: List[str]) -> str:
    """Map a priority word onto the closest allowed label (exact before substring)."""
    word = word.lower()
    level = PRIORITY_LEVEL.get(word, word)
    chain = [word] + [c for c in PRIORITY_SYNONYMS.get(level, []) if c != word]
    if not labels:
        return level.capitalize()
    for cand in chain:
        hit = _label_in(cand, labels)
        if hit:
            return hit
    for cand in chain:
        for lb in labels:
            if cand in lb.lower():
                return lb
    return level.capitalize()


def _priority(field: FieldDescriptor, ctx: RuleContext) -> Hit:
    m = PRIORITY_WORD_RE.search(ctx.lower)
    if not m:
        return None
    return map_priority(m.group(1), field.labels), PRIORITY_CONFIDENCE


def normalize_quarter(quarter: str, year: str) -> str:
    q = quarter.strip().lower()
    q = _QUARTER_WORDS.get(q, q)
    if q.startswith("q"):
        q = q[1:]
    return f"Q{q} {year}"


def _quarter(field: FieldDescriptor, ctx: RuleContext) -> Hit:
    labels = field.labels
    this_year = str(ctx.today.year)
    for pattern in QUARTER_PATTERNS:
        m = pattern.search(ctx.text)
        if not m:
            continue
        year = m.group(2) if m.lastindex and m.lastindex >= 2 else this_year
        hit = normalize_quarter(m.group(1), year)
        if hit in labels:
            return hit, QUARTER_CONFIDENCE
    cq = current_quarter(ctx.today)
    ym = _YEAR_RE.search(ctx.text)
    if ym:
        hit = f"Q{cq} {ym.group(1)}"
        if hit in labels:
            return hit, QUARTER_YEAR_CONFIDENCE
    hit = f"Q{cq} {this_year}"
    if hit in labels:
        return hit, QUARTER_CURRENT_CONFIDENCE
    return None


def _roadmap(field: FieldDescriptor, ctx: RuleContext) -> Hit:
    values: List[str] = []
    if INTERNAL_RE.search(ctx.lower):
        values.append("Internal")
    if EXTERNAL_RE.search(ctx.lower):
        values.append("External")
    if not values:
        return None
    return values, ROADMAP_CONFIDENCE


def _story_points(field: FieldDescriptor, ctx: RuleContext) -> Hit:
    m = STORY_POINTS_RE.search(ctx.lower)
    if not m:
        return None
    return int(m.group(1)), STORY_POINTS_CONFIDENCE


def _component(field: FieldDescriptor, ctx: RuleContext) -> Hit:
    for lb in field.labels:
        if lb and lb.lower() in ctx.lower:
            return lb, COMPONENT_CONFIDENCE
    return None


def _epic(field: FieldDescriptor, ctx: RuleContext) -> Hit:
    m = ISSUE_KEY_RE.search(ctx.text)
    if not m:
        return None
    return m.group(1), EPIC_CONFIDENCE


def _name(field: FieldDescriptor) -> str:
    return (field.name or "").lower()


RULES: List[PatternRule] = [
    PatternRule("priority", lambda f, s: "priority" in _name(f), _priority),
    PatternRule("quarter", lambda f, s: "quarter" in _name(f) or f.id == s.delivery_quarter_field_id, _quarter),
    PatternRule("roadmap", lambda f, s: f.id == s.roadmap_field_id or "roadmap" in _name(f), _roadmap),
    PatternRule("story_points", lambda f, s: "story" in _name(f) and "point" in _name(f), _story_points),
    PatternRule("component", lambda f, s: "component" in _name(f), _component),
    PatternRule("epic", lambda f, s: "epic" in _name(f), _epic),
]


def apply_rules(field: FieldDescriptor, ctx: RuleContext) -> Optional[Tuple[str, Any, float]]:
    """Return (rule name, value, confidence) for the first applicable rule, or None."""
    for rule in RULES:
        if not rule.applies(field, ctx.settings):
            continue
        hit = rule.extract(field, ctx)
        if hit is None:
            return None
        value, confidence = hit
        return rule.name, value, confidence
    return None
