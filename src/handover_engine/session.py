"""Conversation driver: one phase state, one message history, one turn at a time."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from .models import BatchKind, BatchSignal, Phase, PhaseState, PhaseTransition
from .parser import decode_batch_signal
from .phases import advance_phase, new_phase_state, record_orientation_seed
from .prompts import (
    SYSTEM_PROMPT,
    build_execution_presentation_prompt,
    build_execution_synthesis_prompt,
    build_step_help_result_wrapper,
    select_prompt,
)

logger = logging.getLogger(__name__)


class BatchError(RuntimeError):
    """Raised when no batch model produced an answer."""


@dataclass
class TurnResult:
    """What the user sees after one turn, plus how the phase moved."""

    text: str
    phase: Phase
    transition: PhaseTransition
    batch_analyses: List[str] = field(default_factory=list)


def response_text(response: Any) -> str:
    """Pull the assistant text out of a chat completion response."""
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    return getattr(message, "content", None) or ""


def _one_line(text: str) -> str:
    return " ".join(text.split())


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def state_to_json(state: PhaseState) -> str:
    return json.dumps(asdict(state), indent=2, default=_json_default)


class ConversationSession:
    """Drives a conversation through orientation, exploration and execution.

    `brain` needs a `complete(messages, model=None)` method returning an OpenAI
    style chat completion. Batch prompts go to every model in `batch_models`
    (the brain's default model when empty).
    """

    def __init__(
        self,
        brain: Any,
        *,
        batch_models: Sequence[str] = (),
        state: Optional[PhaseState] = None,
    ) -> None:
        self._brain = brain
        self._batch_models: Sequence[Optional[str]] = tuple(batch_models) or (None,)
        self.state = state or new_phase_state()
        self.messages: List[Dict[str, Any]] = [{"role": "system", "content": SYSTEM_PROMPT}]

    def _ask(self, prompt: str) -> str:
        # History only grows once the call succeeds.
        request = {"role": "user", "content": prompt}
        reply = response_text(self._brain.complete(self.messages + [request]))
        self.messages.extend([request, {"role": "assistant", "content": reply}])
        return reply

    def run_batch(self, prompt: str) -> str:
        """Send a batch prompt to each batch model and join the answers."""
        answers: List[str] = []
        for model in self._batch_models:
            try:
                response = self._brain.complete([{"role": "user", "content": prompt}], model=model)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Batch call to %s failed: %s", model or "default model", exc)
                continue
            text = response_text(response).strip()
            if text:
                answers.append(f"### Perspective {len(answers) + 1}\n\n{text}")
        if not answers:
            raise BatchError(f"No answers from {len(self._batch_models)} batch model(s)")
        logger.info("Batch gathered %s answer(s)", len(answers))
        return "\n\n".join(answers)

    def send(self, user_message: str) -> TurnResult:
        """Run one user turn and return the visible reply."""
        seeding = self.state.phase is Phase.ORIENTATION and self.state.turns_in_phase == 0
        reply = self._ask(select_prompt(self.state, user_message))

        transition = advance_phase(self.state, reply)
        state = transition.state
        if seeding and not transition.phase_changed:
            state = record_orientation_seed(
                state,
                user_query=_one_line(user_message),
                starter_response=_one_line(transition.user_response),
            )
        self.state = state

        result = TurnResult(text=transition.user_response, phase=state.phase, transition=transition)
        try:
            if transition.workflow_started and transition.batch_signal and transition.batch_signal.prompt_body:
                result.text = self._start_workflow(transition.batch_signal, result.batch_analyses)
            elif transition.step_help is not None and transition.step_help.prompt_body:
                result.text = self._answer_step_help(transition.step_help, user_message, result.batch_analyses)
        except BatchError as exc:
            logger.error("Batch request could not be served: %s", exc)
        except Exception as exc:  # noqa: BLE001
            logger.error("Follow-up after %s failed: %s", transition.previous_phase.value, exc)
        result.phase = self.state.phase
        return result

    def _start_workflow(self, signal: BatchSignal, analyses: List[str]) -> str:
        analysis = self.run_batch(signal.prompt_body or "")
        analyses.append(analysis)
        self.state = replace(self.state, pending_workflow_analysis=analysis)

        synthesized = self._ask(build_execution_synthesis_prompt(signal.handover, analysis))
        step_signal = decode_batch_signal(synthesized)
        if step_signal.kind is not BatchKind.STEP_HELP or not step_signal.prompt_body:
            return step_signal.user_response

        step_analysis = self.run_batch(step_signal.prompt_body)
        analyses.append(step_analysis)
        self.state = replace(self.state, pending_step_help_analysis=step_analysis)
        presented = self._ask(build_execution_presentation_prompt(step_analysis))
        return decode_batch_signal(presented).user_response

    def _answer_step_help(self, signal: BatchSignal, user_message: str, analyses: List[str]) -> str:
        analysis = self.run_batch(signal.prompt_body or "")
        analyses.append(analysis)
        self.state = replace(self.state, pending_step_help_analysis=analysis)
        answered = self._ask(build_step_help_result_wrapper(analysis, user_message))
        return decode_batch_signal(answered).user_response
