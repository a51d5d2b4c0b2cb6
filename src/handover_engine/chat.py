"""Interactive chat-style CLI for the conversation driver.

Runs the same session logic as the scripted runner but reads user turns
from stdin and reports phase changes as they happen.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from typing import Callable, List, Optional

from .config import EngineConfig
from .main import LLMBrain, configure_logging
from .session import ConversationSession, state_to_json


logger = logging.getLogger("handover_engine.chat")


def chat_loop(
    session: ConversationSession,
    *,
    read: Callable[[str], str] = input,
    max_turns: int = 100,
) -> int:
    """Read turns until EOF, `/quit`, or the turn limit. Returns turns taken."""
    turns = 0
    while turns < max_turns:
        try:
            message = read("you> ").strip()
        except EOFError:
            break
        if not message:
            continue
        if message == "/quit":
            break
        if message == "/state":
            print(state_to_json(session.state))
            continue

        result = session.send(message)
        turns += 1
        print(f"assistant> {result.text}")
        if result.transition.phase_changed:
            print(f"phase> {result.transition.previous_phase.value} -> {result.phase.value}")
        for analysis in result.batch_analyses:
            print(f"batch< {analysis[:2000]}")

    if turns >= max_turns:
        print("error: reached turn limit", file=sys.stderr)
    return turns


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Interactive multi-phase conversation")
    parser.add_argument("--model", help="Optional chat model override")
    parser.add_argument("--max-turns", type=int, default=100, help="Stop after this many turns")
    args = parser.parse_args(argv)

    try:
        cfg = EngineConfig.from_env()
    except Exception as exc:  # noqa: BLE001
        configure_logging()
        logger.error("Configuration error: %s", exc)
        return 1

    if args.model:
        cfg = replace(cfg, openai_model=args.model)

    configure_logging(cfg.log_level)

    brain = LLMBrain.from_config(cfg)
    session = ConversationSession(brain, batch_models=cfg.effective_batch_models)
    chat_loop(session, max_turns=args.max_turns)
    print(f"final phase: {session.state.phase.value}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
