"""
Tests for phase prompt selection and rendering.
"""

from dataclasses import replace

from handover_engine.models import (
    ActiveWorkflow,
    ExecutionHandover,
    IntentHandover,
    Phase,
    StepStatus,
    WorkflowStep,
)
from handover_engine.parser import decode_intent_handover
from handover_engine.phases import new_phase_state
from handover_engine.prompts import (
    HANDOVER_TEMPLATE,
    build_execution_synthesis_prompt,
    bullets,
    select_prompt,
)


class TestSelectPrompt:
    def test_orientation_first_turn_has_no_directive(self):
        prompt = select_prompt(new_phase_state(), "Which database?")
        assert '"Which database?"' in prompt
        assert "<<<HANDOVER>>>" not in prompt

    def test_orientation_continue_carries_seed(self):
        state = replace(
            new_phase_state({"shape": "comparative", "user_query": "Which database?", "starter_response": "Depends."}),
            turns_in_phase=1,
        )
        prompt = select_prompt(state, "Mostly reads")
        assert "shape: comparative" in prompt
        assert "user_query: Which database?" in prompt
        assert "starter_response: Depends." in prompt
        assert prompt.rstrip().endswith('"Mostly reads"')

    def test_exploration_first_and_later_turns(self):
        handover = IntentHandover(shape="comparative", implied_goal="pick a db", resisted_framing=None)
        state = replace(new_phase_state(), phase=Phase.EXPLORATION, intent_handover=handover)
        first = select_prompt(state, "go on")
        assert "**Goal:** pick a db" in first
        assert "**Resisted:** Nothing" in first
        assert "**Tensions:**\nNone identified" in first
        later = select_prompt(replace(state, turns_in_phase=2), "go on")
        assert "pick a db" not in later
        assert "TYPE: WORKFLOW" in later

    def test_execution_lists_workflow(self):
        workflow = ActiveWorkflow(
            goal="pick a db",
            steps=[
                WorkflowStep(id="1", title="List needs", status=StepStatus.COMPLETE),
                WorkflowStep(id="2", title="Benchmark", status=StepStatus.ACTIVE),
            ],
            current_step_index=1,
        )
        state = replace(
            new_phase_state(),
            phase=Phase.EXECUTION,
            intent_handover=IntentHandover(),
            execution_handover=ExecutionHandover(goal="pick a db"),
            active_workflow=workflow,
        )
        prompt = select_prompt(state, "stuck")
        assert "- [complete] List needs" in prompt
        assert "> [active] Benchmark" in prompt
        assert "TYPE: STEP_HELP" in prompt


class TestTemplates:
    def test_bullets(self):
        assert bullets([]) == "- None"
        assert bullets(None, "nothing") == "nothing"
        assert bullets(["a", "b"]) == "- a\n- b"

    def test_handover_template_decodes(self):
        template = HANDOVER_TEMPLATE.format(shape="linear", user_query="q", starter_response="r")
        handover = decode_intent_handover(template).handover
        assert handover.shape == "linear"
        assert handover.key_findings == ["list"]
        assert handover.effective_stance == "explore|decide|challenge"

    def test_synthesis_prompt(self):
        handover = ExecutionHandover(goal="ship", constraints=["budget"])
        prompt = build_execution_synthesis_prompt(handover, "### Perspective 1\n\nDo X")
        assert "**Goal:** ship" in prompt
        assert "- budget" in prompt
        assert "Do X" in prompt
        assert "TYPE: STEP_HELP" in prompt
