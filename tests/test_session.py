"""
Tests for the conversation driver using a scripted fake brain.
"""

import json
from types import SimpleNamespace

import pytest

from handover_engine.models import Phase
from handover_engine.session import BatchError, ConversationSession, response_text, state_to_json


def _completion(text):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


class FakeBrain:
    """Replays canned chat replies; single-message calls are batch calls."""

    def __init__(self, chat_replies, batch_replies=(), fail_batch=False):
        self.chat_replies = list(chat_replies)
        self.batch_replies = list(batch_replies)
        self.fail_batch = fail_batch
        self.chat_calls = []
        self.batch_calls = []

    def complete(self, messages, model=None):
        if len(messages) == 1:
            self.batch_calls.append((model, messages[0]["content"]))
            if self.fail_batch:
                raise RuntimeError("provider down")
            return _completion(self.batch_replies.pop(0))
        self.chat_calls.append([dict(m) for m in messages])
        return _completion(self.chat_replies.pop(0))


HANDOVER_REPLY = (
    "Sounds like you want to ship.\n<<<HANDOVER>>>\nshape: exploratory\ngoal: ship a side project\n"
    "constraints: [weekends]\n<<<END>>>"
)
WORKFLOW_REPLY = (
    "Let's build a plan.\n<<<BATCH>>>\nTYPE: WORKFLOW\nHANDOVER:\n  goal: ship a side project\n"
    "  constraints: [weekends]\nPROMPT:\nYou are a product coach. Propose a plan.\n<<<END>>>"
)
SYNTH_REPLY = (
    "Workflow: 1. Scope 2. Build 3. Launch\n<<<BATCH>>>\nTYPE: STEP_HELP\nSTEP: Scope\n"
    "PROMPT:\nHow should they scope?\n<<<END>>>"
)
STEP_HELP_REPLY = (
    "Let me ask around.\n<<<BATCH>>>\nTYPE: STEP_HELP\nSTEP: Build\nBLOCKER: auth\n"
    "PROMPT:\nHow to add auth fast?\n<<<END>>>"
)


@pytest.fixture
def brain():
    return FakeBrain(
        chat_replies=[
            "It depends on your time.",
            HANDOVER_REPLY,
            WORKFLOW_REPLY,
            SYNTH_REPLY,
            "Here is the full workflow. Ready?",
            STEP_HELP_REPLY,
            "Use a hosted auth provider.",
        ],
        batch_replies=["Plan: scope, build, launch", "Scope to one feature", "Use magic links"],
    )


class TestConversationSession:
    """End-to-end phase progression."""

    def test_full_progression(self, brain):
        session = ConversationSession(brain, batch_models=["model-a"])

        first = session.send("I want to build a side project")
        assert first.phase is Phase.ORIENTATION
        assert first.text == "It depends on your time."
        assert session.state.context_meta["user_query"] == "I want to build a side project"

        second = session.send("Mostly weekends")
        assert second.phase is Phase.EXPLORATION
        assert second.transition.phase_changed
        assert second.text == "Sounds like you want to ship."
        handover_prompt = brain.chat_calls[1][-1]["content"]
        assert "user_query: I want to build a side project" in handover_prompt
        assert "starter_response: It depends on your time." in handover_prompt

        third = session.send("Give me a plan")
        assert third.phase is Phase.EXECUTION
        assert third.text == "Here is the full workflow. Ready?"
        assert len(third.batch_analyses) == 2
        assert "Plan: scope, build, launch" in session.state.pending_workflow_analysis
        assert "Scope to one feature" in session.state.pending_step_help_analysis
        assert session.state.active_workflow.goal == "ship a side project"
        assert brain.batch_calls[0] == ("model-a", "You are a product coach. Propose a plan.")
        assert brain.batch_calls[1] == ("model-a", "How should they scope?")

        fourth = session.send("I'm stuck on auth")
        assert fourth.phase is Phase.EXECUTION
        assert fourth.transition.step_help.meta.blocker == "auth"
        assert fourth.text == "Use a hosted auth provider."
        assert "Use magic links" in session.state.pending_step_help_analysis

    def test_exploration_first_turn_renders_handover(self, brain):
        session = ConversationSession(brain)
        session.send("I want to build a side project")
        session.send("Mostly weekends")
        session.send("Give me a plan")
        exploration_prompt = brain.chat_calls[2][-1]["content"]
        assert "**Goal:** ship a side project" in exploration_prompt
        assert "- weekends" in exploration_prompt

    def test_batch_failure_keeps_decoded_phase(self):
        brain = FakeBrain(chat_replies=["Hi.", HANDOVER_REPLY, WORKFLOW_REPLY], fail_batch=True)
        session = ConversationSession(brain, batch_models=["a", "b"])
        session.send("hello")
        session.send("weekends")
        result = session.send("plan please")
        assert result.phase is Phase.EXECUTION
        assert result.text == "Let's build a plan."
        assert result.batch_analyses == []
        assert len(brain.batch_calls) == 2

    def test_failed_chat_call_leaves_history_untouched(self):
        class BrokenBrain:
            def complete(self, messages, model=None):
                raise ConnectionError("offline")

        session = ConversationSession(BrokenBrain())
        with pytest.raises(ConnectionError):
            session.send("hello")
        assert [m["role"] for m in session.messages] == ["system"]
        assert session.state.turns_in_phase == 0

    def test_failed_synthesis_call_does_not_escape_send(self):
        class SynthesisFailsBrain(FakeBrain):
            def complete(self, messages, model=None):
                if len(messages) > 1 and not self.chat_replies:
                    raise ConnectionError("timeout")
                return super().complete(messages, model=model)

        brain = SynthesisFailsBrain(
            chat_replies=["Hi.", HANDOVER_REPLY, WORKFLOW_REPLY],
            batch_replies=["Plan: scope, build, launch"],
        )
        session = ConversationSession(brain)
        session.send("hello")
        session.send("weekends")
        result = session.send("plan please")
        assert result.phase is Phase.EXECUTION
        assert result.text == "Let's build a plan."
        assert session.messages[-1]["role"] == "assistant"
        assert len(session.messages) == 7

    def test_run_batch_raises_when_all_fail(self):
        session = ConversationSession(FakeBrain([], fail_batch=True), batch_models=["a"])
        with pytest.raises(BatchError):
            session.run_batch("prompt")

    def test_run_batch_joins_answers(self):
        session = ConversationSession(FakeBrain([], batch_replies=["one", "two"]), batch_models=["a", "b"])
        analysis = session.run_batch("prompt")
        assert analysis == "### Perspective 1\n\none\n\n### Perspective 2\n\ntwo"


class TestHelpers:
    def test_response_text_handles_empty(self):
        assert response_text(SimpleNamespace(choices=[])) == ""
        assert response_text(_completion(None)) == ""
        assert response_text(_completion("hi")) == "hi"

    def test_state_to_json(self, brain):
        session = ConversationSession(brain)
        session.send("I want to build a side project")
        session.send("Mostly weekends")
        payload = json.loads(state_to_json(session.state))
        assert payload["phase"] == "exploration"
        assert payload["intent_handover"]["revealed_constraints"] == ["weekends"]
        assert payload["execution_handover"] is None
