"""
Shared pytest fixtures for Lead Qualifier tests.

Provides fixtures for:
- Mock LLM clients (classify-and-extract responses)
- Flow config builders
- Temporary config directories with flows and catalogs
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
import yaml

from lead_qualifier.classifier.llm.schemas import ExtractionItem
from lead_qualifier.state_machine import StateMachineConfig, StateMachineContext


# =============================================================================
# Mock LLM Fixtures
# =============================================================================

def llm_response(
    primary: str = "direct_answer",
    extracted: Optional[List[Dict[str, Any]]] = None,
    objection: Optional[str] = None,
    correction: Optional[Dict[str, str]] = None,
    confidence: float = 0.9
) -> str:
    """JSON text shaped like a classify-and-extract response."""
    return json.dumps({
        "intent": {"primary": primary, "objection": objection, "confidence": confidence},
        "extracted": extracted or [],
        "correction": correction,
    })


@pytest.fixture
def llm_json():
    """Builder for classify-and-extract JSON responses."""
    return llm_response


@pytest.fixture
def mock_llm():
    """Basic mock LLM client answering with a clarification question."""
    llm = MagicMock()
    llm.generate.return_value = llm_response("clarification_question")
    llm.model = "mock-model"
    return llm


@pytest.fixture
def mock_llm_with_responses():
    """Mock LLM client returning the given responses in order."""
    def _create(*responses: str):
        llm = MagicMock()
        llm.generate.side_effect = list(responses)
        llm.model = "mock-model"
        return llm
    return _create


# =============================================================================
# Config Builders
# =============================================================================

def make_state(
    state_id: str,
    order: int,
    collects: Optional[List[str]] = None,
    next_state: Optional[str] = None,
    state_type: str = "data_collection",
    **extra: Any
) -> Dict[str, Any]:
    """Dict form of a state that advances once all of `collects` are present."""
    collects = collects or []
    state: Dict[str, Any] = {
        "id": state_id,
        "order": order,
        "type": state_type,
        "prompt": f"Ask {state_id}?",
        "collects": [{"mapping_key": key, "label": key.title()} for key in collects],
        "transitions": [],
    }
    if next_state:
        condition = (
            {"type": "data_collected", "mapping_keys": collects}
            if collects else {"type": "always"}
        )
        state["transitions"].append({"target_state_id": next_state, "condition": condition})
    state.update(extra)
    return state


def linear_flow_dict(
    fields: Optional[List[str]] = None,
    flow: str = "buy",
    **extra: Any
) -> Dict[str, Any]:
    """Dict form of a flow collecting one field per state, then lead capture and completion."""
    fields = fields if fields is not None else ["location", "budget", "timeline"]
    ids = [f"s_{key}" for key in fields] + ["contact", "done"]
    states = [
        make_state(ids[i], i + 1, [key], ids[i + 1])
        for i, key in enumerate(fields)
    ]
    states.append(make_state("contact", len(fields) + 1, None, "done", state_type="lead_capture"))
    states.append(make_state("done", len(fields) + 2, None, None, state_type="completion"))
    data = {
        "id": f"{flow}_test",
        "flow": flow,
        "initial_state_id": ids[0],
        "lead_capture_state_id": "contact",
        "states": states,
    }
    data.update(extra)
    return data


@pytest.fixture
def state_dict():
    return make_state


@pytest.fixture
def flow_dict():
    return linear_flow_dict


@pytest.fixture
def yaml_writer():
    return write_yaml


@pytest.fixture
def linear_config() -> StateMachineConfig:
    """location -> budget -> timeline -> contact -> done."""
    return StateMachineConfig.from_dict(linear_flow_dict())


@pytest.fixture
def make_context():
    def _create(state_id: str, profile: Optional[Dict[str, str]] = None, **kwargs: Any):
        return StateMachineContext(current_state_id=state_id, user_input=dict(profile or {}), **kwargs)
    return _create


@pytest.fixture
def extraction():
    def _create(key: str, value: str, confidence: float = 0.9) -> ExtractionItem:
        return ExtractionItem(mapping_key=key, value=value, confidence=confidence)
    return _create


# =============================================================================
# Config Directory Fixtures
# =============================================================================

def write_yaml(path: Path, data: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
    return path


@pytest.fixture
def config_dir(tmp_path):
    """Temporary config directory with a valid buy flow and a small catalog."""
    write_yaml(tmp_path / "flows" / "buy.yaml", linear_flow_dict())
    write_yaml(tmp_path / "content" / "advice.yaml", {
        "items": [
            {"id": "universal", "title": "For everyone", "priority": 5},
            {
                "id": "big_budget",
                "title": "Big budget",
                "priority": 1,
                "applicable_when": {
                    "flow": ["buy"],
                    "rule_groups": [{
                        "logic": "AND",
                        "rules": [{"field": "budget", "operator": "greater_than", "value": "400000"}],
                    }],
                },
            },
        ],
    })
    return tmp_path
