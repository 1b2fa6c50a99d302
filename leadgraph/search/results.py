"""
Search results and scoring.

Turns one raw backend record into a SearchResult: resolves the table it came
from, finds which fields mention the searched entity and scores the match.
"""

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from leadgraph.extraction.extractor import Entity, SearchValue
from leadgraph.search.responses import SOURCE_TABLE_KEY

TABLE_KEYS = (SOURCE_TABLE_KEY, "table_name", "tableName", "_table")
UNKNOWN_TABLE = "unknown"

BASE_SCORE = 0.5
EXACT_MATCH_BONUS = 0.3
PARTIAL_MATCH_BONUS = 0.1
TIER_BONUS = {
    SearchValue.HIGH: 0.2,
    SearchValue.MEDIUM: 0.1,
    SearchValue.LOW: 0.0,
}


@dataclass
class SearchResult:
    """
    One record returned for a searched entity.

    Attributes:
        id: "{table}_{record id}" (content hash when the record has no id)
        table: Source table name
        record: The record's field -> value data
        matched_fields: Fields whose value contains the searched term
        matched_entities: Entity values that found this record
        score: Match quality (0.0-1.0)
    """
    id: str
    table: str
    record: Dict[str, Any]
    matched_fields: List[str] = field(default_factory=list)
    matched_entities: List[str] = field(default_factory=list)
    score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "table": self.table,
            "record": self.record,
            "matched_fields": list(self.matched_fields),
            "matched_entities": list(self.matched_entities),
            "score": round(self.score, 4),
        }


def resolve_table(raw: Mapping[str, Any]) -> str:
    for key in TABLE_KEYS:
        value = raw.get(key)
        if value:
            return str(value)
    return UNKNOWN_TABLE


def record_payload(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """The record's own fields: a nested "data" object when present."""
    nested = raw.get("data")
    if isinstance(nested, dict) and nested:
        return nested
    return dict(raw)


def record_identity(table: str, record: Mapping[str, Any]) -> str:
    """
    Stable result id.

    Records without an id get a content hash so re-fetching the same record
    under a different lead still deduplicates.
    """
    record_id = record.get("id")
    if record_id is None or record_id == "":
        digest = hashlib.md5(
            json.dumps(record, sort_keys=True, default=str).encode()
        ).hexdigest()
        record_id = digest[:12]
    return f"{table}_{record_id}"


def find_matched_fields(record: Mapping[str, Any], term: str) -> List[str]:
    """Fields whose stringified value contains term (case-insensitive)."""
    needle = term.lower()
    if not needle:
        return []
    return [
        key for key, value in record.items()
        if value is not None and needle in str(value).lower()
    ]


def calculate_score(
    record: Mapping[str, Any],
    entity: Entity,
    matched_fields: List[str]
) -> float:
    """
    Score a record for the entity that found it.

    0.5 base, +0.3 per field equal to the value, +0.1 per field merely
    containing it, +0.2 HIGH / +0.1 MEDIUM, then scaled by the entity's
    confidence and capped at 1.0.
    """
    score = BASE_SCORE
    term = entity.value.lower()

    for name in matched_fields:
        value = str(record.get(name, "")).strip().lower()
        if value == term:
            score += EXACT_MATCH_BONUS
        elif term in value:
            score += PARTIAL_MATCH_BONUS

    score += TIER_BONUS.get(entity.search_value, 0.0)
    score *= entity.confidence
    return min(1.0, score)


def build_search_result(raw: Mapping[str, Any], entity: Entity) -> SearchResult:
    """SearchResult for one raw backend record found by entity."""
    table = resolve_table(raw)
    record = record_payload(raw)
    matched = find_matched_fields(record, entity.value)
    return SearchResult(
        id=record_identity(table, record),
        table=table,
        record=record,
        matched_fields=matched,
        matched_entities=[entity.value],
        score=calculate_score(record, entity, matched),
    )


__all__ = [
    "SearchResult",
    "resolve_table",
    "record_payload",
    "record_identity",
    "find_matched_fields",
    "calculate_score",
    "build_search_result",
]
