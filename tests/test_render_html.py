# tests/test_render_html.py
from __future__ import annotations

import io
import re
from pathlib import Path
from types import MappingProxyType

import pytest

from matchreport.models import LightRuleMatch, MatchStatus
from matchreport.report.grouping import count_by_full_rule_id, sort_matches
from matchreport.report import render_html
from matchreport.report.render_html import highlight_context, render, render_report
from matchreport.rules.catalog_loader import RuleCatalog

CATALOG = RuleCatalog(
    language="xx",
    name="test",
    rule_to_category=MappingProxyType({"X": "A", "Y": "B"}),
)
FIXED_TS = "2024-01-01T00:00:00+00:00"

RESULT_TEXT = """\
1.) Line 1, column 5, Rule ID: Y
Message: Message for Y
The <b>dog</b> & cat.
    ^^^^^^^^^^

2.) Line 2, column 1, Rule ID: X [temp_off]
Message: First X
Rule source: rules/xx/grammar.xml
Bad start.
^^^

3.) Line 3, column 1, Rule ID: X
Message: Second X
Bad again.
^^^
"""


def _m(full_id: str, msg: str = "msg", context: str = "ctx", **kw) -> LightRuleMatch:
    return LightRuleMatch(rule_id=full_id.split("[", 1)[0], full_rule_id=full_id, message=msg, context=context, **kw)


def _render(matches, threshold: int = 0) -> str:
    buf = io.StringIO()
    ordered = sort_matches(matches, CATALOG)
    render_report(
        buf, ordered, count_by_full_rule_id(matches), CATALOG,
        title="result.txt", threshold=threshold, generated_at=FIXED_TS,
    )
    return buf.getvalue()


def test_highlight_context_restores_only_marker_tags():
    ctx = "The <span class='marker'>cat sat</span> on mat."
    assert str(highlight_context(ctx)) == ctx

    ctx2 = "a < b & <span class='marker'>c > d</span> <i>e</i> </span>"
    out = str(highlight_context(ctx2))
    assert out == "a &lt; b &amp; <span class='marker'>c &gt; d</span> &lt;i&gt;e&lt;/i&gt; &lt;/span&gt;"


def test_highlight_context_without_marker_is_fully_escaped():
    assert str(highlight_context("<script>x</script>")) == "&lt;script&gt;x&lt;/script&gt;"


def test_end_to_end_scenario_two_categories():
    matches = [_m("X", "x1"), _m("Y", "y1"), _m("X", "x2")]
    html = _render(matches)

    assert "3 total matches<br>" in html
    toc, detail = html.split("<h1>TOC</h1>", 1)[1].split("<br>\n<h1>Category", 1)
    assert toc.index("<h3>Category A</h3>") < toc.index("<h3>Category B</h3>")
    assert "<a href='#X'>X (2)</a><br>" in toc
    assert "<a href='#Y'>Y (1)</a><br>" in toc

    assert detail.index(" A</h1>") < detail.index("<h1>Category B</h1>")
    a_part, b_part = detail.split("<h1>Category B</h1>")
    assert "<a name='X'></a><h3>X  (2 matches)</h3>" in a_part
    assert a_part.count("<li>") == 2
    assert b_part.count("<li>") == 1
    assert "Note: 0 rules have been skipped because they matched fewer than 0 times" in html


def test_total_count_equals_input_size_with_threshold():
    matches = [_m("X"), _m("X"), _m("Y")]
    html = _render(matches, threshold=2)
    m = re.search(r"(\d+) total matches<br>", html)
    assert m and int(m.group(1)) == len(matches)
    assert "<a href='#Y'>" not in html
    assert "<a name='Y'>" not in html
    assert "<a name='X'></a>" in html
    assert "Note: 1 rules have been skipped because they matched fewer than 2 times" in html
    # Category B heading still present in both passes
    assert "<h3>Category B</h3>" in html and "<h1>Category B</h1>" in html


def test_message_is_escaped_and_context_marker_survives():
    matches = [_m("X", msg="Use <em> & co", context="x <span class='marker'>y</span> <z>")]
    html = _render(matches)
    assert "<span class='message'>Use &lt;em&gt; &amp; co</span><br>" in html
    assert "<span class='sentence'>x <span class='marker'>y</span> &lt;z&gt;</span><br>" in html


def test_temp_off_marker_and_source_line():
    matches = [_m("X", status=MatchStatus.TEMP_OFF, rule_source="grammar.xml"), _m("Y")]
    html = _render(matches)
    assert "<h3>X [temp_off] (1 matches)</h3>" in html
    assert "Source: grammar.xml<br><br>" in html
    assert "<h3>Y  (1 matches)</h3>" in html
    assert "Source: n/a<br><br>" in html


def test_rendering_is_idempotent():
    matches = [_m("X", "x1"), _m("Y", "y1"), _m("X", "x2"), _m("UNMAPPED")]
    assert _render(matches) == _render(matches)


def test_document_frame():
    html = _render([])
    assert html.startswith("<!doctype html>\n<!-- generated by matchreport on " + FIXED_TS + " -->\n")
    assert "<title>Sorted result.txt</title>" in html
    for cls in (".sentence", ".message", ".marker"):
        assert cls in html
    assert "0 total matches<br>" in html
    assert html.rstrip().endswith("</html>")


def test_render_returns_stats(tmp_path: Path):
    src = tmp_path / "result.txt"
    src.write_text(RESULT_TEXT, encoding="utf-8")
    out = tmp_path / "report.html"

    stats = render(src, out, CATALOG, generated_at=FIXED_TS)

    assert stats.total_matches == 3
    assert stats.rule_ids == 2
    assert stats.rendered_rule_ids == 2
    assert stats.skipped_rule_ids == 0
    html = out.read_text(encoding="utf-8")
    assert "<h3>X [temp_off] (2 matches)</h3>" in html
    assert "Source: rules/xx/grammar.xml" in html
    assert "The <span class='marker'>&lt;b&gt;dog&lt;/b&gt;</span> &amp; cat." in html
    assert html.index("First X") < html.index("Second X") < html.index("Message for Y")


def test_render_counts_unknown_categories(tmp_path: Path):
    src = tmp_path / "result.txt"
    src.write_text("1.) Line 1, column 1, Rule ID: NOPE\nMessage: m\n", encoding="utf-8")
    stats = render(src, tmp_path / "r.html", CATALOG, generated_at=FIXED_TS)
    assert stats.unknown_category_matches == 1
    assert "<h1>Category unknown</h1>" in (tmp_path / "r.html").read_text(encoding="utf-8")


def test_render_missing_input_propagates_and_closes_output(tmp_path: Path):
    out = tmp_path / "report.html"
    with pytest.raises(FileNotFoundError):
        render(tmp_path / "missing.txt", out, CATALOG)
    # Output handle was acquired before parsing and released on the error path
    assert out.exists()
    assert out.read_text(encoding="utf-8") == ""


class _FailingTemplate:
    """Yields the real template's first chunks, then fails."""

    def __init__(self, template, fail_after: int):
        self._template = template
        self._fail_after = fail_after

    def generate(self, **ctx):
        for i, chunk in enumerate(self._template.generate(**ctx)):
            if i == self._fail_after:
                raise RuntimeError("render failed")
            yield chunk


class _BrokenSink:
    def __init__(self, fail_after: int):
        self.chunks = []
        self._fail_after = fail_after

    def write(self, s: str) -> int:
        if len(self.chunks) == self._fail_after:
            raise OSError("disk full")
        self.chunks.append(s)
        return len(s)


def test_render_failure_midway_propagates_and_releases_output(tmp_path: Path, monkeypatch):
    src = tmp_path / "result.txt"
    src.write_text(RESULT_TEXT, encoding="utf-8")
    out = tmp_path / "report.html"
    monkeypatch.setattr(render_html, "TEMPLATE", _FailingTemplate(render_html.TEMPLATE, fail_after=3))

    with pytest.raises(RuntimeError, match="render failed"):
        render(src, out, CATALOG, generated_at=FIXED_TS)

    # Partial output was flushed by closing the handle
    partial = out.read_text(encoding="utf-8")
    assert partial.startswith("<!doctype html>")
    assert "</html>" not in partial


def test_render_report_sink_write_error_propagates():
    sink = _BrokenSink(fail_after=2)
    matches = sort_matches([_m("X"), _m("Y")], CATALOG)
    with pytest.raises(OSError, match="disk full"):
        render_report(sink, matches, count_by_full_rule_id(matches), CATALOG, generated_at=FIXED_TS)
    assert len(sink.chunks) == 2
