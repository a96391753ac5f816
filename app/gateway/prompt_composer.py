"""Prompt Composer: builds the ordered upstream message list.

Layout (order is load-bearing for answer quality):
  1. System directive: role statement + tone directive + mode directive
  2. Up to ``history_limit`` most recent history turns, oldest first,
     each annotated with its own mode/tone when the caller tagged it
  3. The new user turn
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from app.gateway.classifier import invalid_input
from app.gateway.types import ComposedPrompt, HistoryTurn, Message, Mode, Role, Tone

DEFAULT_HISTORY_LIMIT = 6

ROLE_STATEMENT = (
    "You are TEXAI, an explainable AI assistant for Texas law enforcement. "
    "Follow CJIS, FISMA, FedRAMP, and Privacy by Design principles. "
    "Provide references when possible."
)

TONE_DIRECTIVES: dict[Tone, str] = {
    Tone.FIELD: "Respond concisely with immediate, step-by-step guidance suitable for real-time operations.",
    Tone.TRAINING: "Respond with a detailed, instructional tone suitable for classroom or self-paced learning.",
}

MODE_DIRECTIVES: dict[Mode, str] = {
    Mode.INFORMATIONAL: (
        "Deliver clear regulatory guidance, cite relevant policies, and suggest follow-up resources."
    ),
    Mode.QUIZ: (
        "Act as a quiz engine. Ask questions one at a time, wait for responses, "
        "and provide scoring plus explanations."
    ),
    Mode.SIMULATION: (
        "Run a branching scenario. Present decisions, adapt based on responses, and explain best practices."
    ),
}

_WHITESPACE = re.compile(r"\s+")


def parse_mode(value: Mode | str | None) -> Mode:
    """Resolve a mode value, failing closed on anything unknown."""
    if value is None:
        return Mode.INFORMATIONAL
    try:
        return Mode(value)
    except ValueError:
        allowed = ", ".join(m.value for m in Mode)
        raise invalid_input(f"mode must be one of: {allowed}.") from None


def parse_tone(value: Tone | str | None) -> Tone:
    if value is None:
        return Tone.TRAINING
    try:
        return Tone(value)
    except ValueError:
        allowed = ", ".join(t.value for t in Tone)
        raise invalid_input(f"tone must be one of: {allowed}.") from None


def build_system_prompt(mode: Mode, tone: Tone) -> str:
    text = f"{ROLE_STATEMENT} {TONE_DIRECTIVES[tone]} {MODE_DIRECTIVES[mode]}"
    return _WHITESPACE.sub(" ", text).strip()


def annotate(turn: HistoryTurn) -> str:
    """Append the turn's own register tags, e.g. ``[Mode:quiz|Tone:field]``."""
    tags = []
    if turn.mode is not None:
        tags.append(f"Mode:{Mode(turn.mode).value}")
    if turn.tone is not None:
        tags.append(f"Tone:{Tone(turn.tone).value}")
    if not tags:
        return turn.content
    return f"{turn.content}\n\n[{'|'.join(tags)}]"


def compose(
    user_input: str,
    mode: Mode | str | None = None,
    tone: Tone | str | None = None,
    history: Sequence[HistoryTurn] | None = None,
    history_limit: int = DEFAULT_HISTORY_LIMIT,
) -> ComposedPrompt:
    """Compose the prompt for one request.

    Older history beyond ``history_limit`` is dropped silently; that is
    context-window management, not an error.
    """
    if not isinstance(user_input, str) or not user_input:
        raise invalid_input()

    resolved_mode = parse_mode(mode)
    resolved_tone = parse_tone(tone)

    turns = list(history or [])
    if history_limit <= 0:
        turns = []
    elif len(turns) > history_limit:
        turns = turns[-history_limit:]

    messages = [Message(Role.SYSTEM, build_system_prompt(resolved_mode, resolved_tone))]
    for turn in turns:
        messages.append(Message(Role(turn.role or Role.USER), annotate(turn)))
    messages.append(Message(Role.USER, user_input))

    return ComposedPrompt(messages=messages)
