from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

"""Field catalog for requirement ingest.

Static description of the importable requirement fields, the enumeration
values and the synonym tables used to map free text onto them.
Everything in this module is constant: built once at import time and passed
by reference into the normalizer.
"""

__all__ = [
    "FieldSpec",
    "LookupEntry",
    "Lookups",
    "REQUIREMENT_FIELDS",
    "FIELD_KEYS",
    "SKIP",
    "PRIORITY_SYNONYMS",
    "STATUS_SYNONYMS",
    "PRIORITY_VALUES",
    "STATUS_VALUES",
    "SOURCE_TYPE_VALUES",
    "DEFAULT_PRIORITY",
    "DEFAULT_STATUS",
    "DEFAULT_SOURCE_TYPE",
    "TITLE_MAX_LENGTH",
    "DESCRIPTION_MAX_LENGTH",
    "WEIGHTING_MIN",
    "WEIGHTING_MAX",
]


@dataclass(frozen=True)
class FieldSpec:
    """Importable field of a requirement record."""
    key: str
    label: str
    required: bool = False


@dataclass(frozen=True)
class LookupEntry:
    """Category / stakeholder area entry supplied by the host page."""
    id: str | int
    name: str


@dataclass(frozen=True)
class Lookups:
    """Read-only lookup collections used to resolve names to ids."""
    categories: tuple[LookupEntry, ...] = ()
    stakeholder_areas: tuple[LookupEntry, ...] = ()

    @staticmethod
    def from_dicts(
        categories: list[dict] | None = None,
        stakeholder_areas: list[dict] | None = None,
    ) -> Lookups:
        """Build Lookups from ``{id, name}`` dictionaries."""
        return Lookups(
            categories=tuple(LookupEntry(id=c["id"], name=c["name"]) for c in categories or ()),
            stakeholder_areas=tuple(
                LookupEntry(id=a["id"], name=a["name"]) for a in stakeholder_areas or ()
            ),
        )


SKIP = "skip"  # mapping sentinel: column is ignored

REQUIREMENT_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("title", "Title", required=True),
    FieldSpec("description", "Description"),
    FieldSpec("priority", "Priority"),
    FieldSpec("status", "Status"),
    FieldSpec("category_name", "Category"),
    FieldSpec("stakeholder_area_name", "Stakeholder Area"),
    FieldSpec("source_type", "Source Type"),
    FieldSpec("source_reference", "Source Reference"),
    FieldSpec("acceptance_criteria", "Acceptance Criteria"),
    FieldSpec("weighting", "Weighting"),
)

FIELD_KEYS: frozenset[str] = frozenset(f.key for f in REQUIREMENT_FIELDS)

PRIORITY_VALUES = ("must_have", "should_have", "could_have", "wont_have")
STATUS_VALUES = ("draft", "under_review", "approved", "rejected")
SOURCE_TYPE_VALUES = (
    "manual",
    "workshop",
    "interview",
    "document",
    "survey",
    "market_analysis",
    "competitor_analysis",
    "ai",
)

DEFAULT_PRIORITY = "should_have"
DEFAULT_STATUS = "draft"
DEFAULT_SOURCE_TYPE = "manual"

TITLE_MAX_LENGTH = 255
DESCRIPTION_MAX_LENGTH = 5000
WEIGHTING_MIN = 0.0
WEIGHTING_MAX = 100.0

PRIORITY_SYNONYMS: Mapping[str, str] = MappingProxyType({
    "must have": "must_have",
    "must": "must_have",
    "high": "must_have",
    "critical": "must_have",
    "should have": "should_have",
    "should": "should_have",
    "medium": "should_have",
    "could have": "could_have",
    "could": "could_have",
    "low": "could_have",
    "nice to have": "could_have",
    "won't have": "wont_have",
    "wont have": "wont_have",
    "wont": "wont_have",
    "out of scope": "wont_have",
})

STATUS_SYNONYMS: Mapping[str, str] = MappingProxyType({
    "draft": "draft",
    "new": "draft",
    "pending": "under_review",
    "under review": "under_review",
    "review": "under_review",
    "approved": "approved",
    "accepted": "approved",
    "done": "approved",
    "rejected": "rejected",
    "declined": "rejected",
})
