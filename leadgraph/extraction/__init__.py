"""Extraction module"""
from .extractor import (
    EntityExtractor,
    EntityType,
    SearchValue,
    Entity,
    ExtractionResult,
)
from .noise import scrub_record, record_text

__all__ = [
    "EntityExtractor",
    "EntityType",
    "SearchValue",
    "Entity",
    "ExtractionResult",
    "scrub_record",
    "record_text",
]
