"""Pane output classification.

Rules are plain ``(state, regex, priority)`` triples. Every non-blank line in
the inspected window is matched against every rule; the highest priority
match wins and, between equal priorities, the most recent line wins.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from beadherd.protocol.models import SessionState

PRIORITY_ERROR = 100
PRIORITY_WAITING = 90
PRIORITY_DONE = 80
PRIORITY_BUSY = 60

DEFAULT_WINDOW = 100


@dataclass(slots=True, frozen=True)
class StateRule:
    state: SessionState
    pattern: re.Pattern[str]
    priority: int


@dataclass(slots=True, frozen=True)
class Detection:
    """Classification result plus the evidence behind it."""

    state: SessionState
    rule: StateRule | None = None
    line: str = ""
    line_number: int = -1
    confidence: float = 1.0


def _rules(state: SessionState, priority: int, *patterns: str, flags: int = re.IGNORECASE) -> list[StateRule]:
    return [StateRule(state, re.compile(p, flags), priority) for p in patterns]


_W = SessionState.WAITING
_E = SessionState.ERROR
_D = SessionState.DONE
_B = SessionState.BUSY

STATE_RULES: list[StateRule] = [
    # Waiting: confirmations, questions, choice menus, input prompts
    *_rules(_W, PRIORITY_WAITING,
            r"\[y/n\]", r"\[yes/no\]",
            r"Do you want to", r"Would you like", r"Continue\?", r"Proceed\?", r"Approve\?",
            r"^\s*\d+\.\s+Other\b", r"Other\s*\(describe",
            r"select.*option", r"choose.*option", r"enter.*number", r"type.*number.*select",
            r"Press Enter", r"Press any key",
            r"waiting for.*input", r"waiting for.*response", r"AskUserQuestion"),

    # Error: pane gone
    *_rules(_E, PRIORITY_ERROR,
            r"Pane is dead", r"\[exited\]", r"\[Process completed\]"),
    # Error: case-sensitive markers
    *_rules(_E, PRIORITY_ERROR,
            r"Error:", r"Exception:", r"Failed:", r"FAILED",
            r"ENOENT", r"EACCES", r"EEXIST", r"EISDIR", r"ENOTDIR", r"EMFILE", r"ENOSPC",
            r"ECONNREFUSED", r"ECONNRESET", r"ETIMEDOUT", r"ENETUNREACH",
            flags=0),
    *_rules(_E, PRIORITY_ERROR,
            r"panic:", r"fatal error", r"stack trace:", r"^\s*at\s+.*:\d+:\d+",
            r"permission denied", r"file not found", r"no such file", r"access denied",
            r"connection refused", r"connection reset", r"network.*unreachable", r"timeout",
            r"rate limit", r"429.*too many requests", r"401.*unauthorized", r"403.*forbidden",
            r"authentication failed", r"invalid.*token", r"unauthorized",
            r"command not found", r"command failed", r"exit status [1-9]", r"exit code [1-9]",
            r"compilation failed", r"build failed", r"syntax error", r"type error", r"parse error",
            r"cannot find module", r"module not found",
            r"test.*failed", r"tests? FAILED", r"\d+ failing", r"assertion.*failed", r"expected.*but got",
            r"null pointer", r"undefined is not", r"cannot read property",
            r"segmentation fault", r"out of memory", r"stack overflow"),

    # Done: completion, commits and PRs, passing tests, finished builds
    *_rules(_D, PRIORITY_DONE,
            r"Task completed", r"Successfully", r"Done\.", r"Done!", r"Finished",
            r"All tasks complete", r"All done", r"completed successfully",
            r"committed.*file.*changed", r"pushed to.*origin", r"pull request created",
            r"PR created", r"successfully merged",
            r"All tests pass", r"tests? passed", r"\d+ passing",
            r"build.*successful", r"build.*complete", r"compiled successfully"),
    *_rules(_D, PRIORITY_DONE,
            r"^\[[\w-]+\s+[a-f0-9]{7}\]", r"✓.*completed", r"✓.*passed", r"✓.*success",
            flags=0),

    # Busy: progress indicators and tool activity
    *_rules(_B, PRIORITY_BUSY,
            r"Processing\.\.\.", r"Working on", r"In progress", r"Loading", r"Building",
            r"Compiling", r"Installing", r"Downloading",
            r"Reading file", r"Writing file", r"Creating file", r"Editing file", r"Modifying",
            r"Running tests?", r"Executing tests?", r"Running command", r"Executing"),
]


def detect_state_with_context(
    output: str,
    *,
    max_lines: int = DEFAULT_WINDOW,
    rules: list[StateRule] | None = None,
) -> Detection:
    """Classify *output* and report which rule and line decided it."""
    active_rules = STATE_RULES if rules is None else rules
    lines = output.split("\n")
    start = max(len(lines) - max_lines, 0)
    window = lines[start:]

    best: Detection | None = None
    best_priority = -1
    for i, line in enumerate(window):
        if not line.strip():
            continue
        confidence = 0.5 + (i / len(window)) * 0.5
        for rule in active_rules:
            if not rule.pattern.search(line):
                continue
            if (
                best is None
                or rule.priority > best_priority
                or (rule.priority == best_priority and confidence > best.confidence)
            ):
                best = Detection(
                    state=rule.state,
                    rule=rule,
                    line=line,
                    line_number=start + i,
                    confidence=confidence,
                )
                best_priority = rule.priority

    if best is not None:
        return best
    if output.strip():
        return Detection(state=SessionState.BUSY, confidence=0.3)
    return Detection(state=SessionState.IDLE)


def classify_output(output: str, *, max_lines: int = DEFAULT_WINDOW) -> SessionState:
    """Return the session state implied by the tail of *output*."""
    return detect_state_with_context(output, max_lines=max_lines).state
