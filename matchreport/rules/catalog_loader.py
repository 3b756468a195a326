# matchreport/rules/catalog_loader.py
from __future__ import annotations

import json
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence

import yaml

from ..models import LightRuleMatch

log = logging.getLogger(__name__)

UNKNOWN_CATEGORY = "unknown"
BUNDLED_CATALOG_DIR = Path(__file__).with_name("catalogs")
_CATALOG_SUFFIXES = (".yaml", ".yml", ".xml")


class CatalogError(Exception):
    """Raised when a rule catalog cannot be found, parsed, or is invalid."""


@dataclass(frozen=True)
class RuleCatalog:
    """
    Read-only rule id -> category id table for one language.

    Attributes
    ----------
    language : str
        Language code the catalog was loaded for (may be empty).
    name : str
        Human-friendly catalog name.
    rule_to_category : Mapping[str, str]
        Immutable lookup table. Rule ids missing here resolve to UNKNOWN_CATEGORY;
        they may have been renamed since the result file was produced.
    """
    language: str = ""
    name: str = "catalog"
    rule_to_category: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def resolve(self, rule_id: str) -> str:
        return self.rule_to_category.get(rule_id, UNKNOWN_CATEGORY)

    def category_of(self, match: LightRuleMatch) -> str:
        return self.resolve(match.rule_id)

    def __len__(self) -> int:
        return len(self.rule_to_category)


def _put(table: Dict[str, str], rule_id: str, category_id: str) -> None:
    prev = table.get(rule_id)
    if prev is not None and prev != category_id:
        log.warning("Rule id %s listed in categories %s and %s; keeping %s", rule_id, prev, category_id, category_id)
    table[rule_id] = category_id


def _table_from_mapping(cfg: Dict[str, Any]) -> Dict[str, str]:
    table: Dict[str, str] = {}

    categories = cfg.get("categories") or {}
    if not isinstance(categories, dict):
        raise CatalogError("'categories' must map category ids to lists of rule ids.")
    for cat_id, rule_ids in categories.items():
        if rule_ids is None:
            continue
        if isinstance(rule_ids, str) or not isinstance(rule_ids, list):
            raise CatalogError(f"Expected a list of rule ids for category '{cat_id}', got {rule_ids!r}")
        for rule_id in rule_ids:
            _put(table, str(rule_id), str(cat_id))

    # Flat overrides win over the grouped section
    rules = cfg.get("rules") or {}
    if not isinstance(rules, dict):
        raise CatalogError("'rules' must map rule ids to category ids.")
    for rule_id, cat_id in rules.items():
        _put(table, str(rule_id), str(cat_id))

    return table


def _table_from_grammar_xml(root: ET.Element) -> Dict[str, str]:
    """Collect <rule id> / <rulegroup id> per <category> from a LanguageTool rule file."""
    table: Dict[str, str] = {}
    for category in root.iter("category"):
        cat_id = category.get("id") or category.get("name")
        if not cat_id:
            raise CatalogError("<category> element without 'id' or 'name' attribute.")
        for el in category.iter():
            if el.tag in ("rule", "rulegroup") and el.get("id"):
                _put(table, el.get("id"), cat_id)
    return table


def _load_text(path_or_text: str) -> str:
    p = Path(path_or_text)
    try:
        if p.is_file():
            return p.read_text(encoding="utf-8")
    except (OSError, ValueError):
        # Not a usable path (e.g., raw YAML with newlines); treat as document text
        pass
    return path_or_text


def load_catalog(path_or_text: str, *, language: str = "") -> RuleCatalog:
    """
    Load a rule catalog from a YAML/JSON/XML file path or raw document text.

    Parameters
    ----------
    path_or_text : str
        File path, or the catalog content itself.
    language : str
        Language code to record when the document doesn't name one.

    Returns
    -------
    RuleCatalog

    Raises
    ------
    CatalogError
        If parsing or validation fails.
    """
    raw = _load_text(path_or_text)

    if raw.lstrip().startswith("<"):
        try:
            root = ET.fromstring(raw)
        except ET.ParseError as e:
            raise CatalogError(f"Could not parse rule file as XML: {e}") from e
        table = _table_from_grammar_xml(root)
        lang = root.get("lang") or language
        name = f"rules ({lang})" if lang else "rules"
    else:
        try:
            # Accept YAML superset (JSON is valid YAML)
            cfg = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            try:
                cfg = json.loads(raw)
            except ValueError:
                raise CatalogError(f"Could not parse catalog as YAML/JSON: {e}") from e
        if not isinstance(cfg, dict):
            raise CatalogError("Catalog document must be a mapping/dictionary at the top level.")
        table = _table_from_mapping(cfg)
        lang = str(cfg.get("language") or language)
        name = str(cfg.get("name", "catalog"))

    log.info("Loaded rule catalog '%s' with %d rule ids", name, len(table))
    return RuleCatalog(language=lang, name=name, rule_to_category=MappingProxyType(table))


def _candidates(lang_code: str) -> Iterable[str]:
    yield lang_code
    base = lang_code.replace("_", "-").split("-", 1)[0]
    if base and base != lang_code:
        yield base


def _looks_like_path(value: str) -> bool:
    """Plain codes like 'en' never shadow bundled catalogs, even if a file of that name exists."""
    if "/" in value or "\\" in value or value.startswith("~"):
        return True
    return Path(value).suffix.lower() in _CATALOG_SUFFIXES


def find_catalog(lang_code: str, search_dirs: Optional[Sequence[Path]] = None) -> Optional[Path]:
    """Locate the catalog file for `lang_code` (e.g. 'en-US' falls back to 'en')."""
    dirs = list(search_dirs) if search_dirs is not None else [BUNDLED_CATALOG_DIR]
    for code in _candidates(lang_code):
        for d in dirs:
            for suffix in _CATALOG_SUFFIXES:
                p = Path(d) / f"{code}{suffix}"
                if p.is_file():
                    return p
    return None


def load_catalog_for_language(lang_code: str, search_dirs: Optional[Sequence[Path]] = None) -> RuleCatalog:
    """
    Build the rule catalog for a language code, or for an explicit catalog file path.

    Raises
    ------
    CatalogError
        If no catalog exists for the language, or it is malformed.
    """
    code = lang_code.strip()
    if not code:
        raise CatalogError("Empty language code.")

    if _looks_like_path(code):
        explicit = Path(code).expanduser()
        if not explicit.is_file():
            raise CatalogError(f"Catalog file not found: {explicit}")
        return load_catalog(str(explicit))

    path = find_catalog(code, search_dirs)
    if path is None:
        raise CatalogError(f"No rule catalog found for language code '{code}'.")
    log.debug("Using catalog %s for language %s", path, code)
    return load_catalog(str(path), language=code)
