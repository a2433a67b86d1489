"""
Pytest configuration and fixtures for Planforge tests.
"""

import json
import sys
from pathlib import Path

import pytest

# Add src directory to path for imports
src_dir = Path(__file__).parent.parent.parent
if str(src_dir) not in sys.path:
    sys.path.insert(0, str(src_dir))


def _todo(title, **overrides):
    todo = {
        "title": title,
        "description": f"{title} the sorting function",
        "instructions": f"{title}: follow the usual approach",
        "expectedResult": f"{title} finished",
        "priority": "high",
        "estimatedTime": 20,
    }
    todo.update(overrides)
    return todo


@pytest.fixture
def plan_payload():
    """Factory for a decoded plan payload (three steps by default)."""

    def make(titles=("Design", "Implement", "Test"), **overrides):
        payload = {
            "planName": "Sorting function",
            "description": "Write and test a sorting function",
            "todos": [_todo(title) for title in titles],
        }
        payload.update(overrides)
        return payload

    return make


@pytest.fixture
def plan_reply(plan_payload):
    """Factory for a completion reply carrying a fenced plan JSON block."""

    def make(payload=None, **overrides):
        body = json.dumps(payload if payload is not None else plan_payload(**overrides))
        return f"Here is the plan:\n```json\n{body}\n```\nIt covers design, code and tests."

    return make


@pytest.fixture
def step_reply():
    """Factory for a completion reply carrying a step-result JSON block."""

    def make(summary="Step finished", done=True, **extra):
        body = {"resultSummary": summary, "todoUpdate": {"done": done}}
        body.update(extra)
        return f"```json\n{json.dumps(body)}\n```"

    return make


@pytest.fixture
def make_plan(plan_payload):
    """Factory for a normalized ``Plan`` built without a completion call."""
    from planforge.planning.plan_parser import PlanParser

    def make(titles=("Design", "Implement", "Test"), goal="Write and test a sorting function"):
        return PlanParser().normalize(plan_payload(titles=titles), goal=goal)

    return make
