#!/usr/bin/env python3
"""
matchreport: HTML report generator CLI

Converts the plain-text result of a grammar-checking batch run into an HTML
report sorted by rule category and rule id.

Examples
--------
  matchreport en results/en-wikipedia.txt reports/en-wikipedia.html
  matchreport de-DE out/sentences.txt report.html
  matchreport rules/en/grammar.xml out/sentences.txt report.html

Notes
-----
<langCode> selects a bundled rule catalog (e.g. 'en', 'de'; 'en-US' falls back
to 'en'). A path to a catalog file (YAML/JSON, or a LanguageTool grammar.xml)
is accepted in its place.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from ..report.render_html import render
from ..rules.catalog_loader import CatalogError, load_catalog_for_language

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_RUNTIME = 1

PROG = "matchreport"
USAGE = f"Usage: {PROG} <langCode> <plainTextResult> <outputFile>"
USAGE_NOTE = "  <plainTextResult> is the result of e.g. Main or SentenceSourceChecker"


class _UsageParser(argparse.ArgumentParser):
    """Print the usage text to stdout and exit 1 on any argument error."""

    def print_usage(self, file=None) -> None:
        out = sys.stdout if file is None else file
        out.write(USAGE + "\n" + USAGE_NOTE + "\n")

    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stdout)
        raise SystemExit(EXIT_USAGE)


def _setup_logging(level: int = logging.INFO) -> None:
    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=fmt)
    else:
        root.setLevel(level)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = _UsageParser(
        prog=PROG,
        usage=f"{PROG} <langCode> <plainTextResult> <outputFile>",
        description="Convert plain-text rule match results to an HTML report sorted by category and rule id.",
        add_help=False,
    )
    p.add_argument("lang_code", help="Language code of the rule catalog, or a catalog file path.")
    p.add_argument("input", help="Plain-text result file.")
    p.add_argument("output", help="Output HTML path.")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    _setup_logging()

    out_path = Path(args.output).expanduser()
    try:
        catalog = load_catalog_for_language(args.lang_code)
        stats = render(Path(args.input).expanduser(), out_path, catalog)
    except (CatalogError, OSError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_RUNTIME

    print(f"Wrote {out_path} ({stats.total_matches} matches, {stats.skipped_rule_ids} rule ids skipped)")
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
