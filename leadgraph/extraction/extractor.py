"""
Entity Extractor

Regex-driven classification of free text into typed, normalized entities.

Every entity type is described by one EntityRule in ENTITY_RULES: the
patterns that find candidates, a normalizer, a validator, a search priority
and a search-value tier. Extraction walks the table, normalizes and validates
each candidate, deduplicates by "type:value" and sorts by priority.

Features:
- Indian phone numbers, emails, PAN / Aadhaar / passport / voter ids,
  bank accounts and IFSC codes (HIGH value search keys)
- Person names, locations and companies (LOW value, used as filters)
- Field hints for structured records (city -> location, *_name -> name, ...)
- Stateless: the per-call seen-set lives on the stack, so one instance is
  safe to share across concurrent investigations
- Never raises on malformed input

Example:
    >>> extractor = EntityExtractor()
    >>> result = extractor.extract("Contact RAHUL SHARMA at 9876543210")
    >>> [e.key for e in result.entities]
    ['phone:9876543210', 'name:rahul sharma']
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Pattern, Tuple

from config.logging_config import get_logger

logger = get_logger(__name__)


# ============================================================================
# DATA STRUCTURES
# ============================================================================

class EntityType(str, Enum):
    """Closed set of entity kinds the extractor recognizes."""
    PHONE = "phone"
    EMAIL = "email"
    ID_NUMBER = "id_number"
    ACCOUNT = "account"
    NAME = "name"
    LOCATION = "location"
    COMPANY = "company"


class SearchValue(str, Enum):
    """
    How useful an entity type is as a search key (a uniqueness proxy).

    Not a confidence measure. MEDIUM has no built-in rule but is honoured by
    the discovery loop and the scorer.
    """
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


@dataclass(frozen=True)
class Entity:
    """
    One typed, normalized value found in text.

    Attributes:
        type: Entity kind
        value: Normalized value (the identity used everywhere downstream)
        original: Text as it appeared in the input
        confidence: Heuristic confidence (0.0-1.0)
        search_value: HIGH / MEDIUM / LOW tier
        search_priority: Sort key, higher first
        start_index: Offset of the match in the input (-1 for field hints)
        end_index: End offset of the match (-1 for field hints)
    """
    type: EntityType
    value: str
    original: str
    confidence: float
    search_value: SearchValue
    search_priority: int
    start_index: int = -1
    end_index: int = -1

    @property
    def key(self) -> str:
        """Identity key "type:value"."""
        return f"{self.type.value}:{self.value}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "value": self.value,
            "original": self.original,
            "confidence": self.confidence,
            "search_value": self.search_value.value,
            "search_priority": self.search_priority,
            "start_index": self.start_index,
            "end_index": self.end_index,
        }


@dataclass
class ExtractionResult:
    """Entities of one extraction, grouped by tier."""
    entities: List[Entity] = field(default_factory=list)
    high_value_entities: List[Entity] = field(default_factory=list)
    medium_value_entities: List[Entity] = field(default_factory=list)
    low_value_entities: List[Entity] = field(default_factory=list)
    unique_identifiers: List[str] = field(default_factory=list)

    @classmethod
    def from_entities(cls, entities: Iterable[Entity]) -> "ExtractionResult":
        """Sort by priority (stable) and derive the groups."""
        ordered = sorted(entities, key=lambda e: e.search_priority, reverse=True)
        return cls(
            entities=ordered,
            high_value_entities=[e for e in ordered if e.search_value == SearchValue.HIGH],
            medium_value_entities=[e for e in ordered if e.search_value == SearchValue.MEDIUM],
            low_value_entities=[e for e in ordered if e.search_value == SearchValue.LOW],
            unique_identifiers=unique_identifiers(ordered),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entities": [e.to_dict() for e in self.entities],
            "high_value_entities": [e.to_dict() for e in self.high_value_entities],
            "medium_value_entities": [e.to_dict() for e in self.medium_value_entities],
            "low_value_entities": [e.to_dict() for e in self.low_value_entities],
            "unique_identifiers": list(self.unique_identifiers),
        }


@dataclass(frozen=True)
class EntityRule:
    """
    Declarative description of one entity type.

    confidence receives the normalized value and returns the heuristic score.
    """
    entity_type: EntityType
    patterns: Tuple[Pattern, ...]
    normalizer: Callable[[str], str]
    validator: Callable[[str], bool]
    priority: int
    search_value: SearchValue
    confidence: Callable[[str], float]
    stop_words: frozenset = frozenset()


# ============================================================================
# HEURISTIC CONSTANTS
# ============================================================================

PRIORITY = {
    EntityType.PHONE: 10,
    EntityType.EMAIL: 9,
    EntityType.ID_NUMBER: 8,
    EntityType.ACCOUNT: 7,
    EntityType.NAME: 3,
    EntityType.COMPANY: 2,
    EntityType.LOCATION: 1,
}

PHONE_CONFIDENCE = 0.98
PHONE_UNVERIFIED_CONFIDENCE = 0.7
EMAIL_CONFIDENCE = 0.95
PAN_CONFIDENCE = 0.99
AADHAAR_CONFIDENCE = 0.98
OTHER_ID_CONFIDENCE = 0.85
ACCOUNT_CONFIDENCE = 0.9
KNOWN_NAME_CONFIDENCE = 0.85
NAME_CONFIDENCE = 0.6
LOCATION_CONFIDENCE = 0.5
COMPANY_CONFIDENCE = 0.6

SEARCHABLE_CONFIDENCE = 0.7
MAX_UNIQUE_IDENTIFIERS = 5
IDENTIFIER_ORDER = (
    EntityType.PHONE,
    EntityType.EMAIL,
    EntityType.ID_NUMBER,
    EntityType.ACCOUNT,
)

COMMON_NAME_PARTS = frozenset({
    "kumar", "singh", "sharma", "verma", "gupta", "agarwal", "jain", "mehta",
    "patel", "shah", "desai", "kaur", "devi", "das", "roy", "choudhury",
    "reddy", "rao", "nair", "menon", "pillai", "iyer", "aman", "rahul",
    "priya", "sunil", "anil", "vijay", "suresh", "ramesh", "rajesh", "deepak",
})

NAME_STOP_WORDS = frozenset({
    "from", "having", "with", "near", "delhi", "mumbai", "bangalore",
    "chennai", "kolkata", "hyderabad", "pune", "india", "west", "east",
    "north", "south", "market", "road", "street", "area", "city",
})


# ============================================================================
# NORMALIZERS / VALIDATORS
# ============================================================================

_MOBILE_RE = re.compile(r"^[6-9]\d{9}$")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PAN_RE = re.compile(r"^[A-Z]{5}\d{4}[A-Z]$")
_AADHAAR_RE = re.compile(r"^\d{12}$")
_ID_RE = re.compile(r"^(?:[A-Z]{5}\d{4}[A-Z]|\d{12}|[A-Z]{1,2}\d{6,8}|[A-Z]{3}\d{7})$")
_ACCOUNT_RE = re.compile(r"^(?:\d{9,18}|[A-Z]{4}0[A-Z0-9]{6})$")


def normalize_phone(raw: str) -> str:
    """
    Reduce a phone match to its 10-digit national form.

    Returns the digits unchanged when they cannot be reduced.
    """
    digits = re.sub(r"\D", "", raw)
    if len(digits) == 10:
        return digits
    if len(digits) == 12 and digits.startswith("91"):
        return digits[2:]
    if len(digits) > 10:
        return digits[-10:]
    return digits


def is_valid_phone(value: str) -> bool:
    return bool(_MOBILE_RE.match(value))


def phone_confidence(value: str) -> float:
    return PHONE_CONFIDENCE if is_valid_phone(value) else PHONE_UNVERIFIED_CONFIDENCE


def normalize_email(raw: str) -> str:
    return raw.strip().lower()


def is_valid_email(value: str) -> bool:
    return bool(_EMAIL_RE.match(value))


def normalize_identifier(raw: str) -> str:
    """Uppercase and drop spaces / hyphens (PAN, Aadhaar, IFSC ...)."""
    return re.sub(r"[\s-]", "", raw).upper()


def is_valid_id(value: str) -> bool:
    return bool(_ID_RE.match(value))


def id_confidence(value: str) -> float:
    if _PAN_RE.match(value):
        return PAN_CONFIDENCE
    if _AADHAAR_RE.match(value):
        return AADHAAR_CONFIDENCE
    return OTHER_ID_CONFIDENCE


def is_valid_account(value: str) -> bool:
    return bool(_ACCOUNT_RE.match(value))


def normalize_text_entity(raw: str) -> str:
    """Lowercase and collapse internal whitespace."""
    return " ".join(raw.split()).lower()


def is_valid_name(value: str) -> bool:
    words = value.split()
    if len(words) < 2:
        return False
    return all(len(w) >= 2 for w in words)


def name_confidence(value: str) -> float:
    if any(w in COMMON_NAME_PARTS for w in value.split()):
        return KNOWN_NAME_CONFIDENCE
    return NAME_CONFIDENCE


def is_valid_place(value: str) -> bool:
    return len(value) >= 3 and any(c.isalpha() for c in value)


def _constant(score: float) -> Callable[[str], float]:
    return lambda _value: score


# ============================================================================
# RULE TABLE
# ============================================================================

ENTITY_RULES: Dict[EntityType, EntityRule] = {
    EntityType.PHONE: EntityRule(
        entity_type=EntityType.PHONE,
        patterns=(
            # Never start inside a longer digit run (Aadhaar, account numbers)
            re.compile(r"(?<!\d)(?:\+91[-\s]?|91[-\s]?|0[-\s]?|[-\s])?([6-9]\d{9})\b"),
            re.compile(r"\+91[-\s]?([6-9]\d{4}[-\s]?\d{5})\b"),
        ),
        normalizer=normalize_phone,
        validator=is_valid_phone,
        priority=PRIORITY[EntityType.PHONE],
        search_value=SearchValue.HIGH,
        confidence=phone_confidence,
    ),
    EntityType.EMAIL: EntityRule(
        entity_type=EntityType.EMAIL,
        patterns=(
            re.compile(r"([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})"),
        ),
        normalizer=normalize_email,
        validator=is_valid_email,
        priority=PRIORITY[EntityType.EMAIL],
        search_value=SearchValue.HIGH,
        confidence=_constant(EMAIL_CONFIDENCE),
    ),
    EntityType.ID_NUMBER: EntityRule(
        entity_type=EntityType.ID_NUMBER,
        patterns=(
            re.compile(r"\b([A-Z]{5}\d{4}[A-Z])\b", re.IGNORECASE),   # PAN
            re.compile(r"\b(\d{4}[\s-]?\d{4}[\s-]?\d{4})\b"),         # Aadhaar
            re.compile(r"\b([A-Z]{1,2}\d{6,8})\b"),                   # passport
            re.compile(r"\b([A-Z]{3}\d{7})\b", re.IGNORECASE),        # voter id
        ),
        normalizer=normalize_identifier,
        validator=is_valid_id,
        priority=PRIORITY[EntityType.ID_NUMBER],
        search_value=SearchValue.HIGH,
        confidence=id_confidence,
    ),
    EntityType.ACCOUNT: EntityRule(
        entity_type=EntityType.ACCOUNT,
        patterns=(
            re.compile(r"(?:account|a/c|acct|acc)[\s:-]*(\d{9,18})\b", re.IGNORECASE),
            re.compile(r"\b([A-Z]{4}0[A-Z0-9]{6})\b"),                # IFSC
        ),
        normalizer=normalize_identifier,
        validator=is_valid_account,
        priority=PRIORITY[EntityType.ACCOUNT],
        search_value=SearchValue.HIGH,
        confidence=_constant(ACCOUNT_CONFIDENCE),
    ),
    EntityType.NAME: EntityRule(
        entity_type=EntityType.NAME,
        patterns=(
            re.compile(r"\b([A-Z][a-z]+(?:[ \t]+[A-Z][a-z]+)+)\b"),
            re.compile(r"\b([A-Z]{2,}(?:[ \t]+[A-Z]{2,})+)\b"),       # ALL CAPS
        ),
        normalizer=normalize_text_entity,
        validator=is_valid_name,
        priority=PRIORITY[EntityType.NAME],
        search_value=SearchValue.LOW,
        confidence=name_confidence,
        stop_words=NAME_STOP_WORDS,
    ),
    EntityType.LOCATION: EntityRule(
        entity_type=EntityType.LOCATION,
        patterns=(
            re.compile(r"\b(?i:from|in|at|near|of)[ \t]+([A-Z][a-z]+(?:[ \t]+[A-Z][a-z]+)?)\b"),
        ),
        normalizer=normalize_text_entity,
        validator=is_valid_place,
        priority=PRIORITY[EntityType.LOCATION],
        search_value=SearchValue.LOW,
        confidence=_constant(LOCATION_CONFIDENCE),
    ),
    EntityType.COMPANY: EntityRule(
        entity_type=EntityType.COMPANY,
        patterns=(
            re.compile(
                r"\b(?:company|firm|business|enterprise|pvt|ltd|llp|inc)\b[ \t]*[.:]?[ \t]*"
                r"([A-Za-z][A-Za-z0-9 \t]{2,30})",
                re.IGNORECASE,
            ),
        ),
        normalizer=normalize_text_entity,
        validator=is_valid_place,
        priority=PRIORITY[EntityType.COMPANY],
        search_value=SearchValue.LOW,
        confidence=_constant(COMPANY_CONFIDENCE),
    ),
}


# Structured-record columns whose values are classified directly
LOCATION_FIELDS = frozenset({
    "city", "state", "district", "location", "town", "village", "place",
    "region", "locality",
})
COMPANY_FIELDS = frozenset({
    "company", "company_name", "employer", "firm", "firm_name",
    "business", "business_name", "organization", "organisation",
})
NON_PERSON_NAME_FIELDS = frozenset({
    "table_name", "file_name", "filename", "user_name", "username",
    "bank_name", "branch_name", "source_name", "column_name",
})

# Pattern-based types not scanned in record values; column hints cover them
RECORD_SCAN_SKIP = frozenset({EntityType.NAME})


def field_hint(key: str) -> Optional[EntityType]:
    """Entity type implied by a record column name, if any."""
    k = key.strip().lower()
    if k in LOCATION_FIELDS:
        return EntityType.LOCATION
    if k in COMPANY_FIELDS:
        return EntityType.COMPANY
    if k in NON_PERSON_NAME_FIELDS:
        return None
    if k == "name" or k.endswith("_name") or k == "fullname":
        return EntityType.NAME
    return None


def unique_identifiers(entities: Iterable[Entity]) -> List[str]:
    """
    Distinct HIGH-value identifiers, phone first then email, id, account.

    At most MAX_UNIQUE_IDENTIFIERS values.
    """
    entities = list(entities)
    found: List[str] = []
    for entity_type in IDENTIFIER_ORDER:
        for entity in entities:
            if entity.type != entity_type or entity.search_value != SearchValue.HIGH:
                continue
            if entity.value in found:
                continue
            found.append(entity.value)
            if len(found) >= MAX_UNIQUE_IDENTIFIERS:
                return found
    return found


# ============================================================================
# ENTITY EXTRACTOR
# ============================================================================

class EntityExtractor:
    """
    Stateless entity extraction service.

    Construct once and pass it to whoever needs it. All per-call state
    (the seen-set) is local to extract(), so concurrent investigations can
    share one instance.

    Example:
        >>> extractor = EntityExtractor()
        >>> extractor.extract("PAN ABCDE1234F").unique_identifiers
        ['ABCDE1234F']
    """

    def __init__(self, rules: Optional[Mapping[EntityType, EntityRule]] = None):
        self.rules: Mapping[EntityType, EntityRule] = rules or ENTITY_RULES

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    def extract(self, text: Any) -> ExtractionResult:
        """
        Extract typed entities from free text.

        Non-string input yields an empty result.
        """
        if not isinstance(text, str) or not text.strip():
            return ExtractionResult()
        return ExtractionResult.from_entities(self._scan(text))

    def extract_from_record(
        self,
        record: Mapping[str, Any],
        table: Optional[str] = None
    ) -> ExtractionResult:
        """
        Extract entities from a field -> value record.

        The record is flattened into "field: value" lines (None and empty
        values skipped) and scanned like text, except that capitalized word
        runs are not taken as names. Values of well-known columns (city,
        company, name, *_name, ...) are classified directly.
        """
        if not isinstance(record, Mapping):
            return ExtractionResult()

        lines = []
        for key, value in record.items():
            if value is None or value == "":
                continue
            lines.append(f"{key}: {value}")

        entities = self._scan("\n".join(lines), skip=RECORD_SCAN_SKIP)
        seen = {e.key for e in entities}
        for entity in self._field_hints(record):
            if entity.key not in seen:
                seen.add(entity.key)
                entities.append(entity)

        result = ExtractionResult.from_entities(entities)

        logger.debug(
            f"Extracted from {table or 'record'}",
            extra={"high_value": [e.original for e in result.high_value_entities]}
        )

        return result

    def merge_results(self, results: Iterable[ExtractionResult]) -> ExtractionResult:
        """Combine results, dedupe by "type:value", re-sort and regroup."""
        merged: List[Entity] = []
        seen = set()
        for result in results:
            for entity in result.entities:
                if entity.key in seen:
                    continue
                seen.add(entity.key)
                merged.append(entity)
        return ExtractionResult.from_entities(merged)

    def is_searchable(self, entity: Entity) -> bool:
        """Worth sending to the record store on its own."""
        return entity.search_value == SearchValue.HIGH and entity.confidence >= SEARCHABLE_CONFIDENCE

    def get_filter_entities(self, entities: Iterable[Entity]) -> List[Entity]:
        """Entities only good for narrowing results."""
        return [
            e for e in entities
            if e.search_value == SearchValue.LOW or e.confidence < SEARCHABLE_CONFIDENCE
        ]

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _scan(self, text: str, skip: frozenset = frozenset()) -> List[Entity]:
        entities: List[Entity] = []
        seen = set()

        for rule in self.rules.values():
            if rule.entity_type in skip:
                continue
            for pattern in rule.patterns:
                for match in pattern.finditer(text):
                    raw = match.group(1) if match.groups() else match.group(0)
                    entity = self._build(rule, raw, match.start(1), match.end(1))
                    if entity is None or entity.key in seen:
                        continue
                    seen.add(entity.key)
                    entities.append(entity)

        return entities

    def _field_hints(self, record: Mapping[str, Any]) -> List[Entity]:
        entities = []
        for key, value in record.items():
            if not isinstance(value, str) or not value.strip():
                continue
            entity_type = field_hint(str(key))
            if entity_type is None or entity_type not in self.rules:
                continue
            entity = self._build(self.rules[entity_type], value, -1, -1)
            if entity is not None:
                entities.append(entity)
        return entities

    def _build(self, rule: EntityRule, raw: str, start: int, end: int) -> Optional[Entity]:
        value = rule.normalizer(raw)
        if not value or not rule.validator(value):
            return None
        if rule.stop_words and all(w in rule.stop_words for w in value.split()):
            return None
        return Entity(
            type=rule.entity_type,
            value=value,
            original=raw.strip(),
            confidence=rule.confidence(value),
            search_value=rule.search_value,
            search_priority=rule.priority,
            start_index=start,
            end_index=end,
        )


__all__ = [
    "EntityType",
    "SearchValue",
    "Entity",
    "EntityRule",
    "ExtractionResult",
    "EntityExtractor",
    "ENTITY_RULES",
    "PRIORITY",
    "RECORD_SCAN_SKIP",
    "field_hint",
    "normalize_phone",
    "unique_identifiers",
]
