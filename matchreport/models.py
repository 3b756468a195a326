"""
Match record model (Pydantic v2)

One `LightRuleMatch` is one rule firing against one piece of input text, as read
back from the plain-text output of a grammar-checking batch run.

Design goals:
- Immutable once parsed (frozen model)
- Accept unknown fields (extra="ignore") so richer producers don't break parsing
- `full_rule_id` is mandatory and non-empty; everything else has a safe default
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

MARKER_OPEN = "<span class='marker'>"
MARKER_CLOSE = "</span>"


class MatchStatus(str, Enum):
    """Rule state at the time the match was recorded."""
    ACTIVE = "active"
    TEMP_OFF = "temp_off"
    OTHER = "other"


class LightRuleMatch(BaseModel):
    """
    A parsed rule match.

    `context` holds the surrounding text with the offending part wrapped in
    MARKER_OPEN ... MARKER_CLOSE.
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    rule_id: str
    full_rule_id: str = Field(min_length=1)
    message: str = ""
    context: str = ""
    rule_source: Optional[str] = None
    status: MatchStatus = MatchStatus.ACTIVE
    line: Optional[int] = Field(default=None, ge=1)
    column: Optional[int] = Field(default=None, ge=1)
    suggestions: Tuple[str, ...] = ()

    @field_validator("rule_id", "full_rule_id", mode="before")
    @classmethod
    def _strip_ids(cls, v):
        return v.strip() if isinstance(v, str) else v

    @property
    def is_temp_off(self) -> bool:
        return self.status is MatchStatus.TEMP_OFF
