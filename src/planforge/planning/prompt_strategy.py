"""
Strategy for planning and step-execution prompt generation.

Defines the contract (``PlanPromptStrategy``) and a sensible default
(``DefaultPlanPromptStrategy``) that produces JSON-structured prompts.

To customise prompts, implement the protocol and inject via
``PlanGenerator(..., prompt_strategy=MyStrategy())`` or
``StepExecutor(..., prompt_strategy=MyStrategy())``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Protocol, runtime_checkable


@dataclass
class StepHistoryEntry:
    index: int
    result_summary: str


@dataclass
class StepPromptContext:
    """Everything the executor knows when it prompts for step ``index``."""

    plan_name: str
    goal: str
    step_titles: List[str]
    index: int
    title: str
    instructions: str
    expected_result: str
    history: List[StepHistoryEntry] = field(default_factory=list)
    rules_text: str = ""
    extra_context: str = ""


@runtime_checkable
class PlanPromptStrategy(Protocol):
    """Contract for prompt generation."""

    def build_planning_prompt(self, goal: str, rules_text: str = "") -> str:
        """Prompt asking for a JSON plan for *goal*."""
        ...

    def build_step_prompt(self, context: StepPromptContext) -> str:
        """Prompt asking the model to carry out one step and report JSON."""
        ...


class DefaultPlanPromptStrategy:
    """Default JSON-based prompts.  Works out of the box."""

    def build_planning_prompt(self, goal: str, rules_text: str = "") -> str:
        rules = f"[RULES]\n{rules_text}\n\n" if rules_text else ""
        return (
            "You are a project architect. Create a detailed plan for: "
            f'"{goal}"\n\n'
            f"{rules}"
            "Important:\n"
            "- Create ONLY the plan, do NOT carry out the work\n"
            "- The plan has 3-7 concrete steps\n"
            "- Every step must be specific and actionable\n"
            "- Mention possible risks\n"
            + self._plan_json_instructions()
        )

    def build_step_prompt(self, context: StepPromptContext) -> str:
        steps = "\n".join(
            f"{i + 1}. {title}" for i, title in enumerate(context.step_titles)
        )
        if context.history:
            progress = "\n".join(
                f"- Step {h.index + 1}: {h.result_summary}" for h in context.history
            )
        else:
            progress = "No steps completed yet"

        sections = [
            "[ROLE]\nYou are a careful executor. Follow the instructions exactly "
            "and do not go beyond the current step.",
        ]
        if context.rules_text:
            sections.append(f"[RULES]\n{context.rules_text}")
        sections.append(
            f"[PLAN]\nName: {context.plan_name}\nGoal: {context.goal}\nSteps:\n{steps}"
        )
        sections.append(f"[PROGRESS]\n{progress}")
        sections.append(
            "[NEXT STEP]\n"
            f"Number: {context.index + 1}\n"
            f"Title: {context.title}\n"
            f"Instructions: {context.instructions}\n"
            f"Done when: {context.expected_result}"
        )
        if context.extra_context:
            sections.append(f"[EXTRA CONTEXT]\n{context.extra_context}")
        sections.append(self._step_json_instructions())
        return "\n\n".join(sections).strip()

    # ------------------------------------------------------------------
    @staticmethod
    def _plan_json_instructions() -> str:
        return (
            "\nRespond with the plan as a JSON object inside a ```json block, "
            "following this exact structure:\n"
            "```json\n"
            "{\n"
            '    "planName": "Plan name",\n'
            '    "description": "Short project description",\n'
            '    "todos": [\n'
            "        {\n"
            '            "title": "Short task title",\n'
            '            "description": "What needs to be done",\n'
            '            "instructions": "Step-by-step instructions on HOW to do it",\n'
            '            "expectedResult": "What should exist when the step is done",\n'
            '            "priority": "high|medium|low",\n'
            '            "estimatedTime": 30\n'
            "        }\n"
            "    ]\n"
            "}\n"
            "```\n\n"
            "Requirements:\n"
            '- "todos" must be a non-empty array\n'
            '- "title", "description", "instructions" and "expectedResult" '
            "must be non-empty strings\n"
            '- "estimatedTime" is a whole number of minutes\n\n'
            "After the JSON block you may add a short explanation."
        )

    @staticmethod
    def _step_json_instructions() -> str:
        return (
            "[OUTPUT FORMAT]\n"
            "Return ONLY a ```json block that follows this schema exactly "
            "(no comments or extra text):\n"
            "```json\n"
            "{\n"
            '  "resultSummary": "2-3 sentences on what was actually done in this step",\n'
            '  "artifacts": ["names/paths of created artifacts, if any"],\n'
            '  "todoUpdate": { "done": true, "notes": "what changed / where the result is" },\n'
            '  "errors": []\n'
            "}\n"
            "```\n\n"
            'If there were errors, list them in "errors": ["error 1", "error 2"]'
        )
