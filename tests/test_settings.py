"""
Settings & State Tests
"""

import pytest
from pydantic import ValidationError

from config.settings import Settings
from leadgraph.core.state_manager import (
    InvestigationStage,
    create_initial_state,
    validate_state,
)


def test_defaults_without_environment():
    s = Settings(_env_file=None)
    assert s.MAX_ITERATIONS >= 1
    assert s.RESULT_CAP >= 1
    assert set(s.LLM_PROVIDER_ORDER) <= {"ollama", "openai", "anthropic"}


def test_provider_order_parsed_from_comma_list():
    s = Settings(_env_file=None, LLM_PROVIDER_ORDER="OpenAI, ollama,")
    assert s.LLM_PROVIDER_ORDER == ["openai", "ollama"]


def test_ollama_fallback_models_parsed():
    s = Settings(_env_file=None, OLLAMA_FALLBACK_MODELS="mistral:7b , llama3:8b")
    assert s.OLLAMA_FALLBACK_MODELS == ["mistral:7b", "llama3:8b"]


def test_record_search_url_joins_path():
    s = Settings(
        _env_file=None,
        RECORD_API_BASE_URL="http://records.local:8080/",
        RECORD_API_SEARCH_PATH="api/search"
    )
    assert s.record_search_url == "http://records.local:8080/api/search"


def test_mask_sensitive():
    s = Settings(_env_file=None, OPENAI_API_KEY="sk-proj-abcdefghijklmnop4xyz", ANTHROPIC_API_KEY="short")
    assert s.mask_sensitive("OPENAI_API_KEY") == "sk-proj-ab...4xyz"
    assert s.mask_sensitive("ANTHROPIC_API_KEY") == "***"
    assert set(s.get_all_api_keys_masked()) == {"OPENAI_API_KEY", "ANTHROPIC_API_KEY"}


def test_limits_validated():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, MAX_ITERATIONS=0)
    with pytest.raises(ValidationError):
        Settings(_env_file=None, LLM_TIMEOUT=1)


def test_initial_state():
    state = create_initial_state(
        query="9876543210",
        max_iterations=5,
        max_total_entities=50,
        max_results_per_entity=100,
        result_cap=500,
    )
    assert state["run_id"].startswith("inv_")
    assert state["stage"] == InvestigationStage.INITIALIZATION.value
    assert state["iteration"] == 0
    assert state["search_queue"] == []
    assert state["api_calls"] == 0
    assert validate_state(state)


def test_validate_state_rejects_missing_keys():
    state = create_initial_state("q", 1, 1, 1, 1, run_id="inv_fixed")
    assert state["run_id"] == "inv_fixed"
    del state["search_queue"]
    with pytest.raises(ValueError):
        validate_state(state)
