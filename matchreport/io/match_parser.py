# matchreport/io/match_parser.py
"""
Reader for the plain-text result format of a grammar-checking batch run.

Each match is a block introduced by a numbered header line and terminated by a
blank line (or the next header / end of file):

    1.) Line 3, column 9, Rule ID: EN_A_VS_AN[1] prio=-1 [temp_off]
    Message: Use "an" instead of 'a' if the following word starts with a vowel sound.
    Suggestion: an
    Rule source: /org/languagetool/rules/en/grammar.xml
    This is a example sentence.
            ^^^^^^^^^

Lines outside a block (titles, timing summaries, ...) are ignored.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, TextIO, Union

from ..models import MARKER_CLOSE, MARKER_OPEN, LightRuleMatch, MatchStatus

PathLike = Union[str, os.PathLike[str]]

log = logging.getLogger(__name__)

__all__ = [
    "read_matches",
    "iter_matches",
    "parse_header",
    "mark_context",
]

HEADER_RX = re.compile(
    r"^\s*\d+\.\)\s+Line\s+(?P<line>\d+),\s+column\s+(?P<column>\d+),\s+"
    r"Rule ID:\s+(?P<full_id>\S+)(?P<rest>.*)$"
)
CARET_RX = re.compile(r"^\s*\^+\s*$")

MESSAGE_PREFIX = "Message:"
SUGGESTION_PREFIX = "Suggestion:"
SOURCE_PREFIX = "Rule source:"
# Annotations and run summaries; never context
_IGNORED_PREFIXES = ("Short message:", "More info:", "URL:", "Time:", "Title:")


@dataclass(frozen=True)
class MatchHeader:
    line: int
    column: int
    full_rule_id: str
    rule_id: str
    status: MatchStatus


def parse_header(text: str) -> Optional[MatchHeader]:
    """Return the parsed header of a match block, or None if `text` isn't one."""
    m = HEADER_RX.match(text)
    if not m:
        return None
    full_id = m.group("full_id")
    rest = m.group("rest")
    if "[temp_off]" in rest:
        status = MatchStatus.TEMP_OFF
    elif "[off]" in rest:
        status = MatchStatus.OTHER
    else:
        status = MatchStatus.ACTIVE
    return MatchHeader(
        line=int(m.group("line")),
        column=int(m.group("column")),
        full_rule_id=full_id,
        rule_id=full_id.split("[", 1)[0],
        status=status,
    )


def mark_context(text: str, caret_line: str) -> str:
    """Wrap the columns underlined by `caret_line` in the marker span."""
    start = caret_line.find("^")
    if start < 0 or start >= len(text):
        return text
    end = min(caret_line.rfind("^") + 1, len(text))
    return text[:start] + MARKER_OPEN + text[start:end] + MARKER_CLOSE + text[end:]


def _build_match(header: MatchHeader, body: List[str]) -> LightRuleMatch:
    message = ""
    suggestions: List[str] = []
    source: Optional[str] = None
    context: Optional[str] = None
    first_plain: Optional[str] = None
    prev_plain: Optional[str] = None

    for line in body:
        if line.startswith(MESSAGE_PREFIX):
            message = line[len(MESSAGE_PREFIX):].strip()
        elif line.startswith(SUGGESTION_PREFIX):
            value = line[len(SUGGESTION_PREFIX):].strip()
            suggestions.extend(s for s in value.split("; ") if s)
        elif line.startswith(SOURCE_PREFIX):
            source = line[len(SOURCE_PREFIX):].strip() or None
        elif line.startswith(_IGNORED_PREFIXES):
            prev_plain = None
            continue
        elif CARET_RX.match(line):
            if context is None and prev_plain is not None:
                context = mark_context(prev_plain, line)
            prev_plain = None
            continue
        else:
            if first_plain is None:
                first_plain = line
            prev_plain = line
            continue
        prev_plain = None

    if context is None:
        context = first_plain or ""

    return LightRuleMatch(
        rule_id=header.rule_id,
        full_rule_id=header.full_rule_id,
        message=message,
        context=context,
        rule_source=source,
        status=header.status,
        line=header.line,
        column=header.column,
        suggestions=tuple(suggestions),
    )


def iter_matches(fp: TextIO) -> Iterator[LightRuleMatch]:
    """
    Iterate matches from an already-open text file-like object.
    Blank lines close the current block.
    """
    header: Optional[MatchHeader] = None
    body: List[str] = []
    for raw in fp:
        line = raw.rstrip("\r\n")
        parsed = parse_header(line)
        if parsed is not None:
            if header is not None:
                yield _build_match(header, body)
            header, body = parsed, []
            continue
        if header is None:
            continue
        if not line.strip():
            yield _build_match(header, body)
            header, body = None, []
            continue
        body.append(line)
    if header is not None:
        yield _build_match(header, body)


def read_matches(path: PathLike) -> List[LightRuleMatch]:
    """Read all matches from a UTF-8 result file. I/O errors propagate."""
    p = Path(path)
    with p.open("r", encoding="utf-8") as f:
        matches = list(iter_matches(f))
    log.info("Parsed %d matches from %s", len(matches), p)
    return matches
