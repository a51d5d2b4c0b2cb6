"""OpenAI-backed runner for scripted multi-phase conversations."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from dataclasses import replace
from typing import Any, Dict, List, Optional

from openai import OpenAI

from .config import EngineConfig
from .session import ConversationSession, state_to_json

logger = logging.getLogger("handover_engine")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


class LLMBrain:
    """Thin wrapper around the OpenAI Chat Completions API with retry logic."""

    def __init__(
        self,
        api_key: str,
        model: str,
        max_retries: int = 3,
        *,
        temperature: float = 0.3,
        max_tokens: int = 4000,
        client: Optional[Any] = None,
    ) -> None:
        self._client = client or OpenAI(api_key=api_key)
        self._model = model
        self._max_retries = max_retries
        self._temperature = temperature
        self._max_tokens = max_tokens

    @classmethod
    def from_config(cls, cfg: EngineConfig) -> "LLMBrain":
        return cls(
            cfg.openai_api_key,
            cfg.openai_model,
            cfg.max_retries,
            temperature=cfg.temperature,
            max_tokens=cfg.max_tokens,
        )

    def complete(self, messages: List[Dict[str, Any]], model: Optional[str] = None) -> Any:
        """Send messages to OpenAI and return the raw response."""

        last_exception: Optional[Exception] = None

        for attempt in range(self._max_retries):
            try:
                return self._client.chat.completions.create(
                    model=model or self._model,
                    messages=messages,
                    temperature=self._temperature,
                    max_tokens=self._max_tokens,
                )
            except Exception as exc:  # noqa: BLE001
                last_exception = exc
                if attempt < self._max_retries - 1:
                    wait_time = 2 ** attempt
                    logger.warning(
                        "OpenAI call failed (attempt %s/%s): %s. Retrying in %ss...",
                        attempt + 1,
                        self._max_retries,
                        exc,
                        wait_time,
                    )
                    time.sleep(wait_time)
                else:
                    logger.error("OpenAI call failed after retries: %s", exc)

        raise last_exception or RuntimeError("Unknown OpenAI API error")


def run_script(session: ConversationSession, messages: List[str]) -> List[Dict[str, Any]]:
    """Feed each message through the session and collect the visible replies."""
    transcript: List[Dict[str, Any]] = []
    for index, message in enumerate(messages, start=1):
        logger.info("Turn %s in phase %s", index, session.state.phase.value)
        result = session.send(message)
        transcript.append(
            {
                "user": message,
                "assistant": result.text,
                "phase": result.phase.value,
                "phase_changed": result.transition.phase_changed,
            }
        )
    return transcript


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run a scripted multi-phase conversation")
    parser.add_argument("--message", action="append", required=True, help="User message; repeat for more turns")
    parser.add_argument("--model", help="Optional chat model override")
    parser.add_argument("--batch-model", action="append", help="Model to fan batch prompts out to; repeatable")
    parser.add_argument("--log-level", help="Optional logging level override")
    args = parser.parse_args(argv)

    try:
        cfg = EngineConfig.from_env()
    except Exception as exc:  # noqa: BLE001
        configure_logging()
        logger.error("Configuration error: %s", exc)
        return 1

    if args.model:
        cfg = replace(cfg, openai_model=args.model)
    if args.batch_model:
        cfg = replace(cfg, batch_models=tuple(args.batch_model))
    if args.log_level:
        cfg = replace(cfg, log_level=args.log_level.upper())

    configure_logging(cfg.log_level)

    brain = LLMBrain.from_config(cfg)
    session = ConversationSession(brain, batch_models=cfg.effective_batch_models)
    transcript = run_script(session, args.message)

    for turn in transcript:
        print(f"you> {turn['user']}")
        print(f"assistant [{turn['phase']}]> {turn['assistant']}")
    print(state_to_json(session.state))
    return 0


if __name__ == "__main__":
    sys.exit(main())
