"""Phase state machine: orientation -> exploration -> execution."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, Optional

from .models import (
    ActiveWorkflow,
    BatchKind,
    Phase,
    PhaseState,
    PhaseTransition,
)
from .parser import decode_batch_signal, decode_intent_handover

logger = logging.getLogger(__name__)


def new_phase_state(context_meta: Optional[Dict[str, Any]] = None) -> PhaseState:
    """Create the state a conversation starts with."""
    return PhaseState(phase=Phase.ORIENTATION, turns_in_phase=0, context_meta=context_meta)


def record_orientation_seed(
    state: PhaseState,
    *,
    shape: str = "",
    user_query: str = "",
    starter_response: str = "",
) -> PhaseState:
    """Merge the first exchange into `context_meta` for the handover template."""
    meta = dict(state.context_meta or {})
    meta.update(
        {
            "shape": shape or meta.get("shape", ""),
            "user_query": user_query,
            "starter_response": starter_response,
        }
    )
    return replace(state, context_meta=meta)


def _stay(state: PhaseState) -> PhaseState:
    return replace(state, turns_in_phase=state.turns_in_phase + 1)


def advance_phase(state: PhaseState, response: str) -> PhaseTransition:
    """Decode one completed model reply and apply the transition rules.

    The input state is left untouched; the transition carries the new one.
    """
    previous = state.phase

    if previous is Phase.ORIENTATION:
        decoded = decode_intent_handover(response)
        if decoded.handover is None:
            logger.debug("No intent handover on orientation turn %s", state.turns_in_phase)
            return PhaseTransition(previous, _stay(state), decoded.user_response)
        logger.info("Intent handover received; moving to exploration (shape=%r)", decoded.handover.shape)
        next_state = replace(
            state,
            phase=Phase.EXPLORATION,
            turns_in_phase=0,
            intent_handover=decoded.handover,
        )
        return PhaseTransition(
            previous,
            next_state,
            decoded.user_response,
            intent_handover=decoded.handover,
        )

    signal = decode_batch_signal(response)

    if previous is Phase.EXPLORATION:
        if signal.kind is BatchKind.WORKFLOW and signal.handover is not None:
            logger.info("Workflow batch received; moving to execution (goal=%r)", signal.handover.goal)
            next_state = replace(
                state,
                phase=Phase.EXECUTION,
                turns_in_phase=0,
                execution_handover=signal.handover,
                active_workflow=ActiveWorkflow(goal=signal.handover.goal),
            )
            return PhaseTransition(
                previous,
                next_state,
                signal.user_response,
                batch_signal=signal,
                workflow_started=True,
            )
        if signal.kind is not None:
            logger.debug("Ignoring %s batch during exploration", signal.kind.value)
        return PhaseTransition(previous, _stay(state), signal.user_response, batch_signal=signal)

    step_help = signal if signal.kind is BatchKind.STEP_HELP else None
    if step_help is not None:
        logger.info("Step help requested for step %r", step_help.meta.step if step_help.meta else None)
    return PhaseTransition(
        previous,
        _stay(state),
        signal.user_response,
        batch_signal=signal,
        step_help=step_help,
    )
