"""Data models shared by the directive parser and the phase machine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Phase(Enum):
    """Ordered conversation phases. Execution is terminal."""

    ORIENTATION = "orientation"
    EXPLORATION = "exploration"
    EXECUTION = "execution"


class BatchKind(Enum):
    """Kinds of batch signal a model may emit."""

    WORKFLOW = "WORKFLOW"
    STEP_HELP = "STEP_HELP"


class StepStatus(Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETE = "complete"


@dataclass(frozen=True)
class IntentHandover:
    """Goal-discovery snapshot handed from orientation to exploration."""

    shape: str = ""
    key_findings: List[str] = field(default_factory=list)
    tensions: List[str] = field(default_factory=list)
    gaps: List[str] = field(default_factory=list)
    user_query: str = ""
    starter_response: str = ""
    user_reply: str = ""
    implied_goal: str = ""
    revealed_constraints: List[str] = field(default_factory=list)
    accepted_framing: str = ""
    # None means the model wrote `null`; "" means the key was missing or blank.
    resisted_framing: Optional[str] = ""
    unprompted_reveals: List[str] = field(default_factory=list)
    still_unclear: List[str] = field(default_factory=list)
    effective_stance: str = ""


@dataclass(frozen=True)
class ExecutionHandover:
    """Execution-readiness snapshot handed from exploration to execution."""

    goal: str = ""
    problem_summary: str = ""
    situation: str = ""
    constraints: List[str] = field(default_factory=list)
    priorities: List[str] = field(default_factory=list)
    decisions_made: List[str] = field(default_factory=list)
    open_questions: List[str] = field(default_factory=list)
    exploration_highlights: List[str] = field(default_factory=list)


@dataclass
class WorkflowStep:
    id: str
    title: str
    description: str = ""
    done_when: str = ""
    status: StepStatus = StepStatus.PENDING


@dataclass
class ActiveWorkflow:
    """Workflow being executed. Steps are filled in outside the engine."""

    goal: str
    steps: List[WorkflowStep] = field(default_factory=list)
    current_step_index: int = 0


@dataclass(frozen=True)
class StepHelpMeta:
    """Identifies the blocked step of a STEP_HELP request."""

    step: Optional[str] = None
    blocker: Optional[str] = None
    context: Optional[str] = None


@dataclass(frozen=True)
class BatchSignal:
    """Decoded batch request. Transient, never stored on the phase state."""

    user_response: str
    kind: Optional[BatchKind] = None
    handover: Optional[ExecutionHandover] = None
    prompt_body: Optional[str] = None
    meta: Optional[StepHelpMeta] = None


@dataclass(frozen=True)
class IntentDecodeResult:
    user_response: str
    handover: Optional[IntentHandover] = None


@dataclass(frozen=True)
class PhaseState:
    """Per-conversation phase record.

    `intent_handover` is set iff the phase is exploration or execution;
    `execution_handover` and `active_workflow` are set iff it is execution.
    """

    phase: Phase = Phase.ORIENTATION
    turns_in_phase: int = 0
    context_meta: Optional[Dict[str, Any]] = None
    intent_handover: Optional[IntentHandover] = None
    execution_handover: Optional[ExecutionHandover] = None
    active_workflow: Optional[ActiveWorkflow] = None
    pending_workflow_analysis: Optional[Any] = None
    pending_step_help_analysis: Optional[Any] = None


@dataclass(frozen=True)
class PhaseTransition:
    """Outcome of one decode-and-advance step."""

    previous_phase: Phase
    state: PhaseState
    user_response: str
    intent_handover: Optional[IntentHandover] = None
    batch_signal: Optional[BatchSignal] = None
    workflow_started: bool = False
    step_help: Optional[BatchSignal] = None

    @property
    def phase_changed(self) -> bool:
        return self.state.phase is not self.previous_phase
