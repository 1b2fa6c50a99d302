"""Insights and summaries module"""
from .heuristics import Insights, generate_insights, fallback_summary, risk_level
from .summarizer import InsightSummary, InsightSummarizer, build_prompt, extract_json

__all__ = [
    "Insights",
    "generate_insights",
    "fallback_summary",
    "risk_level",
    "InsightSummary",
    "InsightSummarizer",
    "build_prompt",
    "extract_json",
]
