# matchreport/report/grouping.py
"""
Aggregation, ordering and grouping of parsed matches for the HTML report.

Both passes are single linear scans over matches sorted by `sort_matches`; they
rely on all matches of one rule id (and all rule ids of one category) being
contiguous, and detect group boundaries by comparing each record's key with the
previous record's key.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..models import LightRuleMatch
from ..rules.catalog_loader import UNKNOWN_CATEGORY, RuleCatalog

log = logging.getLogger(__name__)

# Minimum match count for a rule id to be listed in the report
THRESHOLD = 0


@dataclass
class TocCategory:
    category_id: str
    entries: List[Tuple[str, int]] = field(default_factory=list)


@dataclass
class RuleSection:
    full_rule_id: str
    count: int
    temp_off: bool
    rule_source: Optional[str]
    items: List[LightRuleMatch] = field(default_factory=list)


@dataclass
class DetailCategory:
    category_id: str
    sections: List[RuleSection] = field(default_factory=list)


@dataclass
class DetailPass:
    categories: List[DetailCategory] = field(default_factory=list)
    skipped: int = 0
    unknown_category_matches: int = 0


def count_by_full_rule_id(matches: Iterable[LightRuleMatch]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for m in matches:
        counts[m.full_rule_id] = counts.get(m.full_rule_id, 0) + 1
    return counts


def sort_matches(matches: Iterable[LightRuleMatch], catalog: RuleCatalog) -> List[LightRuleMatch]:
    """Stable sort by (category id, full rule id)."""
    return sorted(matches, key=lambda m: (catalog.category_of(m), m.full_rule_id))


def sort_rules_in_category(entries: Mapping[str, int]) -> List[Tuple[str, int]]:
    """Most frequent first; equal counts ordered by rule id."""
    return sorted(entries.items(), key=lambda kv: (-kv[1], kv[0]))


def build_toc(
    matches: Sequence[LightRuleMatch],
    counts: Mapping[str, int],
    catalog: RuleCatalog,
    threshold: int = THRESHOLD,
) -> List[TocCategory]:
    toc: List[TocCategory] = []
    pending: Dict[str, int] = {}
    prev_rule_id = None
    prev_category_id = None

    for m in matches:
        rule_id = m.full_rule_id
        category_id = catalog.category_of(m)
        if rule_id != prev_rule_id:
            if category_id != prev_category_id:
                if toc:
                    toc[-1].entries = sort_rules_in_category(pending)
                pending = {}
                toc.append(TocCategory(category_id))
            count = counts[rule_id]
            if count >= threshold:
                pending[rule_id] = count
        prev_rule_id = rule_id
        prev_category_id = category_id

    if toc:
        toc[-1].entries = sort_rules_in_category(pending)
    return toc


def build_detail(
    matches: Sequence[LightRuleMatch],
    counts: Mapping[str, int],
    catalog: RuleCatalog,
    threshold: int = THRESHOLD,
) -> DetailPass:
    """
    Group sorted matches into per-category rule sections.

    `section` is the open list (None when no section is open). A rule id whose
    count is below `threshold` opens nothing, so its matches are dropped and it
    adds exactly one to `skipped`.
    """
    result = DetailPass()
    section: Optional[RuleSection] = None
    prev_rule_id = None
    prev_category_id = None

    for m in matches:
        category_id = catalog.category_of(m)
        if category_id == UNKNOWN_CATEGORY:
            result.unknown_category_matches += 1
        if m.full_rule_id != prev_rule_id:
            section = None
            if category_id != prev_category_id:
                result.categories.append(DetailCategory(category_id))
            count = counts[m.full_rule_id]
            if count >= threshold:
                section = RuleSection(
                    full_rule_id=m.full_rule_id,
                    count=count,
                    temp_off=m.is_temp_off,
                    rule_source=m.rule_source,
                )
                result.categories[-1].sections.append(section)
            else:
                result.skipped += 1
        if section is not None:
            section.items.append(m)
        prev_rule_id = m.full_rule_id
        prev_category_id = category_id

    if result.unknown_category_matches:
        log.debug(
            "%d matches have rule ids missing from catalog '%s'",
            result.unknown_category_matches, catalog.name,
        )
    return result
