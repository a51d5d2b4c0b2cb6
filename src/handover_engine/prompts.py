"""Prompt templates for each conversation phase."""

from __future__ import annotations

from typing import List, Optional

from .models import ActiveWorkflow, ExecutionHandover, IntentHandover, Phase, PhaseState

SYSTEM_PROMPT = """You are a concierge that turns an open-ended question into a plan the user can act on.

You speak as one voice. Never mention models, analyses, batches, or directive blocks in the prose the user reads.
When a prompt asks you to append a directive block, write it after your reply, exactly in the format shown,
one `key: value` per line, lists as [a, b, c]."""

HANDOVER_TEMPLATE = """<<<HANDOVER>>>
shape: {shape}
key_findings: [list]
tensions: [list]
gaps: [list]
user_query: {user_query}
starter_response: {starter_response}
user_reply: {{their most recent message}}
goal: {{your interpretation of what they actually want}}
constraints: [what limits them]
accepted_framing: {{how they engaged}}
resisted_framing: {{what they pushed back on, or null}}
unprompted_reveals: [what they volunteered]
still_unclear: [what the explorer should probe]
effective_stance: explore|decide|challenge
<<<END>>>"""

WORKFLOW_TEMPLATE = """<<<BATCH>>>
TYPE: WORKFLOW

HANDOVER:
  goal: [refined goal]
  problem_summary: [one paragraph]
  situation: [who they are]
  constraints: [hard limits]
  priorities: [what they optimize for]
  decisions_made: [locked choices]
  open_questions: [may surface later]
  exploration_highlights: [key moments]

PROMPT:
[Expert prompt]
<<<END>>>"""

STEP_HELP_TEMPLATE = """<<<BATCH>>>
TYPE: STEP_HELP

STEP: [step name]
BLOCKER: [what's blocking]
CONTEXT: [relevant constraints]

PROMPT:
[Expert prompt for this blocker]
<<<END>>>"""


def bullets(items: Optional[List[str]], empty: str = "- None") -> str:
    if not items:
        return empty
    return "\n".join(f"- {item}" for item in items)


def build_orientation_initial_prompt(user_message: str) -> str:
    return f"""## The Query
"{user_message}"

## Response Guide
Answer the question directly and usefully. Name what the answer depends on, then ask the one question
that would most change your answer.

## Never
- Hedge without explaining what you're uncertain about
- Say "it depends" without saying on what

Respond. Do not write any directive block on this turn."""


def build_orientation_continue_wrapper(
    user_message: str,
    *,
    shape: str = "",
    user_query: str = "",
    starter_response: str = "",
) -> str:
    template = HANDOVER_TEMPLATE.format(shape=shape, user_query=user_query, starter_response=starter_response)
    return f"""Continue the conversation naturally.

You may write an Intent Handover when you have sufficient signal:
- Their goal is understood (not just the question they asked)
- Some constraints have surfaced (time, resources, skill, stakes)
- They've engaged with your framing (accepted, resisted, or redirected)

If they're still orienting or haven't revealed enough, continue without handover. There's no rush.

To hand over, append after your response:

{template}

---

"{user_message}\""""


def build_exploration_initial_prompt(handover: IntentHandover, user_message: str) -> str:
    return f"""You've inherited a conversation from a prior phase.

## What Was Learned

**Shape:** {handover.shape}

**Key findings:**
{bullets(handover.key_findings)}

**Tensions:**
{bullets(handover.tensions, 'None identified')}

**Gaps:**
{bullets(handover.gaps, 'None identified')}

## The Exchange So Far

**They asked:** "{handover.user_query}"

**You responded:** "{handover.starter_response}"

**They replied:** "{handover.user_reply}"

## Your Read

- **Goal:** {handover.implied_goal}
- **Constraints:**
{bullets(handover.revealed_constraints, '- None stated')}
- **Accepted:** {handover.accepted_framing}
- **Resisted:** {handover.resisted_framing or 'Nothing'}
- **Volunteered:**
{bullets(handover.unprompted_reveals)}
- **Unclear:**
{bullets(handover.still_unclear)}
- **Stance:** {handover.effective_stance or 'explore'}

## Your Role

You are the explorer. Make constraints clear, name tradeoffs, surface red lines.
Never invent urgency. It must come from them or from reality.

## To Trigger Workflow

Only when commitment crystallizes ("give me a plan", "I need to ... by ..."), append:

{WORKFLOW_TEMPLATE}

The PROMPT section is a brief for an expert: role, task, context bullets, expected output.

## Current Message

"{user_message}\""""


def build_exploration_continue_wrapper(user_message: str) -> str:
    return f"""Continue the conversation naturally.

You may trigger a WORKFLOW batch when the goal is stable, constraints are explicit, and they ask for a
plan or next steps. Otherwise keep exploring.

To trigger workflow, append after your response:

{WORKFLOW_TEMPLATE}

---

"{user_message}\""""


def build_execution_synthesis_prompt(handover: ExecutionHandover, workflow_analysis: str) -> str:
    return f"""You're entering execution mode.

## The Problem

**Goal:** {handover.goal}

{handover.problem_summary}

## The User

- **Situation:** {handover.situation}
- **Constraints:**
{bullets(handover.constraints)}
- **Priorities:**
{bullets(handover.priorities)}
- **Decided:**
{bullets(handover.decisions_made)}
- **Open:**
{bullets(handover.open_questions)}

## What the Experts Proposed

{workflow_analysis}

## Your Task

Synthesize a coherent workflow: clear steps, "done when" criteria, recommendations at decision points,
pitfalls to avoid. Where experts disagreed, pick for this user's context.

Then end your response with:

<<<BATCH>>>
TYPE: STEP_HELP

STEP: [Step 1 title]
CONTEXT: [User's situation and constraints relevant to this step]

PROMPT:
[Expert prompt specifically for executing Step 1]
<<<END>>>"""


def build_execution_presentation_prompt(step_analysis: str) -> str:
    return f"""You just synthesized a workflow. You now have expert guidance for Step 1.

## Step 1 Expert Guidance

{step_analysis}

## Your Task

Present the complete workflow. Expand Step 1 with specific actions, the recommended approach,
what to watch out for, and how to know it's done. End by asking if they're ready to start.

## Going Forward

If they get stuck on something that genuinely needs several perspectives, append:

{STEP_HELP_TEMPLATE}

Most questions you answer directly."""


def build_step_help_result_wrapper(step_help_analysis: str, user_message: str) -> str:
    return f"""The step help batch returned. Here's what the experts said:

{step_help_analysis}

Synthesize this into actionable guidance for them.

---

"{user_message}\""""


def _workflow_outline(workflow: Optional[ActiveWorkflow]) -> str:
    if workflow is None:
        return "- No workflow recorded"
    lines = [f"**Goal:** {workflow.goal}"]
    for index, step in enumerate(workflow.steps):
        marker = ">" if index == workflow.current_step_index else "-"
        lines.append(f"{marker} [{step.status.value}] {step.title}")
    return "\n".join(lines)


def build_execution_continue_wrapper(user_message: str, workflow: Optional[ActiveWorkflow]) -> str:
    return f"""You're helping them execute.

## Workflow

{_workflow_outline(workflow)}

Answer directly when you can. If a blocker genuinely needs several perspectives, append:

{STEP_HELP_TEMPLATE}

---

"{user_message}\""""


def select_prompt(state: PhaseState, user_message: str) -> str:
    """Pick and render the prompt for the current phase and turn."""
    first_turn = state.turns_in_phase == 0
    if state.phase is Phase.ORIENTATION:
        if first_turn:
            return build_orientation_initial_prompt(user_message)
        meta = state.context_meta or {}
        return build_orientation_continue_wrapper(
            user_message,
            shape=str(meta.get("shape") or ""),
            user_query=str(meta.get("user_query") or ""),
            starter_response=str(meta.get("starter_response") or ""),
        )
    if state.phase is Phase.EXPLORATION:
        if first_turn and state.intent_handover is not None:
            return build_exploration_initial_prompt(state.intent_handover, user_message)
        return build_exploration_continue_wrapper(user_message)
    return build_execution_continue_wrapper(user_message, state.active_workflow)
