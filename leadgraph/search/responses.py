"""
Record-store response shapes.

The search backend has answered in several JSON layouts over time. Each one
is a variant of ResponseShape; classify_response() picks the variant with an
explicit UNKNOWN fallback, and parse_search_response() turns any payload into
a flat list of raw record dicts. Nothing here raises.

Known layouts:
    [ {...}, ... ]                              BARE_LIST
    {"results": [ {...}, ... ]}                 RESULTS_LIST
    {"results": {"table_a": [...], ...}}        RESULTS_BY_TABLE
    {"records": [...]}                          RECORDS
    {"data": [...]}                             DATA
    {"items": [...]}                            ITEMS
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List

from config.logging_config import get_logger

logger = get_logger(__name__)

SOURCE_TABLE_KEY = "_source_table"
UNKNOWN_SAMPLE_CHARS = 500


class ResponseShape(str, Enum):
    BARE_LIST = "bare_list"
    RESULTS_LIST = "results_list"
    RESULTS_BY_TABLE = "results_by_table"
    RECORDS = "records"
    DATA = "data"
    ITEMS = "items"
    UNKNOWN = "unknown"


@dataclass
class ParsedResponse:
    """Raw records of one backend call plus the layout they came in."""
    shape: ResponseShape
    records: List[Dict[str, Any]] = field(default_factory=list)
    skipped: int = 0

    def __len__(self) -> int:
        return len(self.records)


def classify_response(payload: Any) -> ResponseShape:
    """Pick the response variant. Order matters: "results" wins over the rest."""
    if isinstance(payload, list):
        return ResponseShape.BARE_LIST

    if not isinstance(payload, dict):
        return ResponseShape.UNKNOWN

    results = payload.get("results")
    if isinstance(results, list):
        return ResponseShape.RESULTS_LIST
    if isinstance(results, dict):
        return ResponseShape.RESULTS_BY_TABLE

    if isinstance(payload.get("records"), list):
        return ResponseShape.RECORDS
    if isinstance(payload.get("data"), list):
        return ResponseShape.DATA
    if isinstance(payload.get("items"), list):
        return ResponseShape.ITEMS

    return ResponseShape.UNKNOWN


def parse_search_response(payload: Any) -> ParsedResponse:
    """
    Flatten any backend payload into raw record dicts.

    Records of a RESULTS_BY_TABLE payload carry their table under
    "_source_table". Non-dict entries are dropped and counted. An UNKNOWN
    payload yields zero records and a warning with its keys.
    """
    shape = classify_response(payload)

    if shape == ResponseShape.BARE_LIST:
        candidates = payload
    elif shape == ResponseShape.RESULTS_LIST:
        candidates = payload["results"]
    elif shape == ResponseShape.RESULTS_BY_TABLE:
        candidates = []
        for table_name, rows in payload["results"].items():
            if not isinstance(rows, list):
                continue
            for row in rows:
                if isinstance(row, dict):
                    candidates.append({**row, SOURCE_TABLE_KEY: table_name})
                else:
                    candidates.append(row)
    elif shape == ResponseShape.RECORDS:
        candidates = payload["records"]
    elif shape == ResponseShape.DATA:
        candidates = payload["data"]
    elif shape == ResponseShape.ITEMS:
        candidates = payload["items"]
    else:
        logger.warning(
            "Unknown search response structure",
            extra={
                "keys": list(payload.keys()) if isinstance(payload, dict) else [],
                "payload_type": type(payload).__name__,
                "sample": _sample(payload),
            }
        )
        return ParsedResponse(shape=shape)

    records = [c for c in candidates if isinstance(c, dict)]
    skipped = len(candidates) - len(records)
    if skipped:
        logger.debug(f"Dropped {skipped} non-object entries", extra={"shape": shape.value})

    return ParsedResponse(shape=shape, records=records, skipped=skipped)


def _sample(payload: Any) -> str:
    try:
        text = json.dumps(payload, default=str)
    except (TypeError, ValueError):
        text = repr(payload)
    return text[:UNKNOWN_SAMPLE_CHARS]


__all__ = [
    "ResponseShape",
    "ParsedResponse",
    "classify_response",
    "parse_search_response",
    "SOURCE_TABLE_KEY",
]
