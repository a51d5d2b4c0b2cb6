"""Lenient decoders for the directive blocks models embed in their replies.

Model output is never trusted to be well formed. Every decoder here degrades
to a default instead of raising: a missing block means "no directive", a line
without a colon is dropped, an unknown `TYPE:` value means "no kind".
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Sequence, Tuple, Union

from .models import (
    BatchKind,
    BatchSignal,
    ExecutionHandover,
    IntentDecodeResult,
    IntentHandover,
    StepHelpMeta,
)

logger = logging.getLogger(__name__)

HANDOVER_START = "<<<HANDOVER>>>"
HANDOVER_END = "<<<END>>>"
BATCH_REQUEST_START = "<<<SINGULARITY_BATCH_REQUEST>>>"
BATCH_REQUEST_END = "<<<END_BATCH_REQUEST>>>"
BATCH_START = "<<<BATCH>>>"
BATCH_END = "<<<END>>>"

# Tried in order; the first pair that yields a block wins.
BATCH_MARKERS: Tuple[Tuple[str, str], ...] = (
    (BATCH_REQUEST_START, BATCH_REQUEST_END),
    (BATCH_START, BATCH_END),
)

RecordValue = Union[None, str, List[str]]
Record = Dict[str, RecordValue]

_NON_KEY_CHARS = re.compile(r"[^a-z0-9_]")
_UNDERSCORE_RUN = re.compile(r"_+")
_KEYWORD_LINE = re.compile(r"^(type|step|blocker|context|handover|prompt):", re.IGNORECASE | re.ASCII)


def _strip_quotes(value: str) -> str:
    for quote in ('"', "'"):
        if len(value) >= 2 and value[0] == quote and value[-1] == quote:
            return value[1:-1]
    return value


def decode_scalar(raw: Optional[str]) -> Optional[str]:
    """Decode a raw value into a string, or None for blank / `null`."""
    value = (raw or "").strip()
    if not value or value.lower() == "null":
        return None
    return _strip_quotes(value)


def decode_list(raw: Optional[str]) -> List[str]:
    """Decode an inline `[a, b, "c"]` list. Commas cannot be escaped."""
    inner = (raw or "").strip()
    if inner.startswith("["):
        inner = inner[1:]
    if inner.endswith("]"):
        inner = inner[:-1]
    inner = inner.strip()
    if not inner:
        return []
    items = [part.strip() for part in inner.split(",")]
    return [_strip_quotes(item) for item in items if item]


def normalize_key(key: str) -> str:
    key = _NON_KEY_CHARS.sub("_", (key or "").strip().lower())
    return _UNDERSCORE_RUN.sub("_", key).strip("_")


def decode_record(lines: Sequence[str]) -> Record:
    """Decode `key: value` lines into a mapping keyed by normalized key.

    Lines without a colon are skipped. Duplicate keys keep the last value.
    Keys nobody asks for are kept so newer prompts can add fields freely.
    """
    record: Record = {}
    for raw_line in lines:
        line = (raw_line or "").rstrip()
        if not line.strip():
            continue
        idx = line.find(":")
        if idx == -1:
            logger.debug("Dropping record line without colon: %r", line)
            continue
        key = normalize_key(line[:idx])
        value = line[idx + 1 :].strip()
        if value.startswith("[") and value.endswith("]"):
            record[key] = decode_list(value)
        else:
            record[key] = decode_scalar(value)
    return record


def extract_block(text: str, start_marker: str, end_marker: str) -> Tuple[str, Optional[str]]:
    """Return `(before, inside)` for the first complete marker-bounded block.

    A start marker with no end marker after it counts as no block at all, so
    a truncated reply reads the same as a reply without a directive.
    """
    text = text or ""
    start_idx = text.find(start_marker)
    if start_idx == -1:
        return text.strip(), None
    after_start = text[start_idx + len(start_marker) :]
    end_idx = after_start.find(end_marker)
    if end_idx == -1:
        logger.debug("Unterminated %s block; treating as absent", start_marker)
        return text.strip(), None
    inside = after_start[:end_idx].strip()
    return text[:start_idx].strip(), inside or None


def extract_indented_block(lines: Sequence[str], start_index: int) -> Tuple[List[str], int]:
    """Collect the indented lines starting at `start_index`.

    Returns the dedented lines and the index of the first unindented line,
    which is not consumed.
    """
    block: List[str] = []
    i = start_index
    while i < len(lines):
        line = lines[i]
        if not line.strip():
            i += 1
            continue
        if not line[0].isspace():
            break
        block.append(line.lstrip())
        i += 1
    return block, i


def _as_str(value: RecordValue) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return ",".join(value)
    return value


def _as_list(value: RecordValue) -> List[str]:
    # Only bracketed lists count; a bare scalar on a list field is dropped.
    return list(value) if isinstance(value, list) else []


def build_intent_handover(record: Record) -> IntentHandover:
    resisted = record.get("resisted_framing")
    goal = record.get("goal") or record.get("implied_goal")
    return IntentHandover(
        shape=_as_str(record.get("shape")),
        key_findings=_as_list(record.get("key_findings")),
        tensions=_as_list(record.get("tensions")),
        gaps=_as_list(record.get("gaps")),
        user_query=_as_str(record.get("user_query")),
        starter_response=_as_str(record.get("starter_response")),
        user_reply=_as_str(record.get("user_reply")),
        implied_goal=_as_str(goal),
        revealed_constraints=_as_list(record.get("constraints")),
        accepted_framing=_as_str(record.get("accepted_framing")),
        resisted_framing=None if "resisted_framing" in record and resisted is None else _as_str(resisted),
        unprompted_reveals=_as_list(record.get("unprompted_reveals")),
        still_unclear=_as_list(record.get("still_unclear")),
        effective_stance=_as_str(record.get("effective_stance")),
    )


def build_execution_handover(record: Record) -> ExecutionHandover:
    return ExecutionHandover(
        goal=_as_str(record.get("goal")),
        problem_summary=_as_str(record.get("problem_summary")),
        situation=_as_str(record.get("situation")),
        constraints=_as_list(record.get("constraints")),
        priorities=_as_list(record.get("priorities")),
        decisions_made=_as_list(record.get("decisions_made")),
        open_questions=_as_list(record.get("open_questions")),
        exploration_highlights=_as_list(record.get("exploration_highlights")),
    )


def decode_intent_handover(response: str) -> IntentDecodeResult:
    """Split a reply into its visible prose and an optional intent handover."""
    before, inside = extract_block(response, HANDOVER_START, HANDOVER_END)
    if inside is None:
        return IntentDecodeResult(user_response=before)
    handover = build_intent_handover(decode_record(inside.split("\n")))
    logger.debug("Decoded intent handover with shape %r", handover.shape)
    return IntentDecodeResult(user_response=before, handover=handover)


def _keyword_value(line: str) -> str:
    return line.split(":", 1)[1]


def decode_batch_signal(response: str) -> BatchSignal:
    """Decode a WORKFLOW or STEP_HELP batch request from a reply."""
    before = (response or "").strip()
    inside: Optional[str] = None
    for start_marker, end_marker in BATCH_MARKERS:
        split_before, split_inside = extract_block(response, start_marker, end_marker)
        if split_inside is not None:
            before, inside = split_before, split_inside
            break
    if inside is None:
        return BatchSignal(user_response=before)

    lines = inside.split("\n")
    kind: Optional[BatchKind] = None
    handover: Optional[ExecutionHandover] = None
    prompt_body: Optional[str] = None
    step = blocker = context = None

    i = 0
    while i < len(lines):
        trimmed = lines[i].strip()
        match = _KEYWORD_LINE.match(trimmed)
        if not match:
            i += 1
            continue

        keyword = match.group(1).lower()
        if keyword == "type":
            value = _keyword_value(trimmed).strip().upper()
            kind = BatchKind(value) if value in ("WORKFLOW", "STEP_HELP") else None
        elif keyword == "step":
            step = decode_scalar(_keyword_value(trimmed))
        elif keyword == "blocker":
            blocker = decode_scalar(_keyword_value(trimmed))
        elif keyword == "context":
            context = decode_scalar(_keyword_value(trimmed))
        elif keyword == "handover":
            block, i = extract_indented_block(lines, i + 1)
            handover = build_execution_handover(decode_record(block))
            continue
        elif keyword == "prompt":
            prompt_body = "\n".join(lines[i + 1 :]).strip() or None
            break
        i += 1

    logger.debug("Decoded batch signal kind=%s prompt=%s", kind, prompt_body is not None)
    return BatchSignal(
        user_response=before,
        kind=kind,
        handover=handover if kind is BatchKind.WORKFLOW else None,
        prompt_body=prompt_body,
        meta=StepHelpMeta(step=step, blocker=blocker, context=context) if kind is BatchKind.STEP_HELP else None,
    )


def _render_value(value: RecordValue) -> str:
    if value is None:
        return "null"
    if isinstance(value, list):
        return "[" + ", ".join(value) + "]"
    return value


def render_intent_handover(handover: IntentHandover) -> str:
    """Write an intent handover in the directive line format."""
    fields = [
        ("shape", handover.shape),
        ("key_findings", handover.key_findings),
        ("tensions", handover.tensions),
        ("gaps", handover.gaps),
        ("user_query", handover.user_query),
        ("starter_response", handover.starter_response),
        ("user_reply", handover.user_reply),
        ("goal", handover.implied_goal),
        ("constraints", handover.revealed_constraints),
        ("accepted_framing", handover.accepted_framing),
        ("resisted_framing", handover.resisted_framing),
        ("unprompted_reveals", handover.unprompted_reveals),
        ("still_unclear", handover.still_unclear),
        ("effective_stance", handover.effective_stance),
    ]
    body = "\n".join(f"{key}: {_render_value(value)}" for key, value in fields)
    return f"{HANDOVER_START}\n{body}\n{HANDOVER_END}"


def render_batch_signal(signal: BatchSignal) -> str:
    """Write a batch signal, preceded by its prose, in the `<<<BATCH>>>` format."""
    lines: List[str] = []
    if signal.user_response:
        lines.extend([signal.user_response, ""])
    lines.append(BATCH_START)
    if signal.kind is not None:
        lines.extend([f"TYPE: {signal.kind.value}", ""])
    if signal.meta is not None:
        for key, value in (("STEP", signal.meta.step), ("BLOCKER", signal.meta.blocker), ("CONTEXT", signal.meta.context)):
            if value is not None:
                lines.append(f"{key}: {value}")
        lines.append("")
    if signal.handover is not None:
        handover = signal.handover
        lines.append("HANDOVER:")
        for key, value in (
            ("goal", handover.goal),
            ("problem_summary", handover.problem_summary),
            ("situation", handover.situation),
            ("constraints", handover.constraints),
            ("priorities", handover.priorities),
            ("decisions_made", handover.decisions_made),
            ("open_questions", handover.open_questions),
            ("exploration_highlights", handover.exploration_highlights),
        ):
            lines.append(f"  {key}: {_render_value(value)}")
        lines.append("")
    if signal.prompt_body is not None:
        lines.extend(["PROMPT:", signal.prompt_body])
    lines.append(BATCH_END)
    return "\n".join(lines)
