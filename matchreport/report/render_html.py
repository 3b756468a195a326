# matchreport/report/render_html.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping, Optional, Protocol, Sequence, Union

from jinja2 import Environment, Template, select_autoescape
from markupsafe import Markup, escape

from ..io.match_parser import read_matches
from ..models import MARKER_CLOSE, MARKER_OPEN, LightRuleMatch
from ..rules.catalog_loader import RuleCatalog
from .grouping import THRESHOLD, build_detail, build_toc, count_by_full_rule_id, sort_matches

PathLike = Union[str, os.PathLike[str]]

log = logging.getLogger(__name__)

GENERATOR_NAME = "matchreport"

# --------------------------
# Template (inline)
# --------------------------
_HTML_TMPL = r"""<!doctype html>
<!-- generated by {{ generator }} on {{ generated_at }} -->
<html>
<head>
  <title>Sorted {{ title }}</title>
  <meta http-equiv="content-type" content="charset=utf-8">
  <style>
    .sentence { color: #000; }
    .message { color: #777; }
    .marker { text-decoration: underline; background-color: #ffe8e8 }
    li { margin-bottom: 8px; }
  </style>
</head>
<body>
{{ total }} total matches<br>
<h1>TOC</h1>
{% for cat in toc %}
<h3>Category {{ cat.category_id }}</h3>
{% for rule_id, count in cat.entries %}
<a href='#{{ rule_id }}'>{{ rule_id }} ({{ count }})</a><br>
{% endfor %}
{% endfor %}
<br>
{% for cat in detail.categories %}
<h1>Category {{ cat.category_id }}</h1>
{% for section in cat.sections %}
<a name='{{ section.full_rule_id }}'></a><h3>{{ section.full_rule_id }} {{ '[temp_off]' if section.temp_off }} ({{ section.count }} matches)</h3>
Source: {{ section.rule_source or 'n/a' }}<br><br>
<ol>
{% for match in section.items %}
<li>
  <span class='message'>{{ match.message }}</span><br>
  <span class='sentence'>{{ match.context | highlight_context }}</span><br>
</li>
{% endfor %}
</ol>
{% endfor %}
{% endfor %}
Note: {{ detail.skipped }} rules have been skipped because they matched fewer than {{ threshold }} times
</body>
</html>
"""

_ESCAPED_MARKER_OPEN = str(escape(MARKER_OPEN))
_ESCAPED_MARKER_CLOSE = str(escape(MARKER_CLOSE))


def highlight_context(context: str) -> Markup:
    """
    HTML-escape a match context, then restore the first marker span tags so the
    highlight renders as markup. Nothing else is un-escaped.
    """
    escaped = str(escape(context))
    escaped = escaped.replace(_ESCAPED_MARKER_OPEN, MARKER_OPEN, 1)
    escaped = escaped.replace(_ESCAPED_MARKER_CLOSE, MARKER_CLOSE, 1)
    return Markup(escaped)


env = Environment(
    autoescape=select_autoescape(["html", "xml"]),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
)
env.filters["highlight_context"] = highlight_context
TEMPLATE: Template = env.from_string(_HTML_TMPL)


class TextSink(Protocol):
    def write(self, s: str) -> int: ...


@dataclass(frozen=True)
class ReportStats:
    total_matches: int
    rule_ids: int
    rendered_rule_ids: int
    skipped_rule_ids: int
    unknown_category_matches: int


# ---------- Public API ----------
def render_report(
    sink: TextSink,
    matches: Sequence[LightRuleMatch],
    counts: Mapping[str, int],
    catalog: RuleCatalog,
    *,
    title: str = "",
    threshold: int = THRESHOLD,
    generated_at: Optional[str] = None,
) -> ReportStats:
    """
    Stream the HTML report for already-sorted `matches` into `sink`.

    `generated_at` is the only time-dependent part of the output; pass a fixed
    value to get byte-identical documents for identical input.
    """
    toc = build_toc(matches, counts, catalog, threshold)
    detail = build_detail(matches, counts, catalog, threshold)
    if generated_at is None:
        generated_at = datetime.now(timezone.utc).replace(microsecond=0).isoformat()

    for chunk in TEMPLATE.generate(
        generator=GENERATOR_NAME,
        generated_at=generated_at,
        title=title,
        total=len(matches),
        toc=toc,
        detail=detail,
        threshold=threshold,
    ):
        sink.write(chunk)

    rendered = sum(len(cat.sections) for cat in detail.categories)
    return ReportStats(
        total_matches=len(matches),
        rule_ids=len(counts),
        rendered_rule_ids=rendered,
        skipped_rule_ids=detail.skipped,
        unknown_category_matches=detail.unknown_category_matches,
    )


def render(
    input_path: PathLike,
    output_path: PathLike,
    catalog: RuleCatalog,
    *,
    threshold: int = THRESHOLD,
    generated_at: Optional[str] = None,
) -> ReportStats:
    """
    Convert a plain-text result file into the HTML report at `output_path`.

    The output file is held open for the whole run and closed on every path;
    parse and I/O errors propagate to the caller.
    """
    out = Path(output_path)
    with out.open("w", encoding="utf-8") as sink:
        matches = read_matches(input_path)
        counts = count_by_full_rule_id(matches)
        ordered = sort_matches(matches, catalog)
        stats = render_report(
            sink,
            ordered,
            counts,
            catalog,
            title=str(input_path),
            threshold=threshold,
            generated_at=generated_at,
        )
    log.info(
        "Rendered %d matches (%d rule ids, %d skipped) to %s",
        stats.total_matches, stats.rule_ids, stats.skipped_rule_ids, out,
    )
    return stats
