# backend/app/json_recovery.py

"""
Recover a JSON object from model output.

Each step is a total str -> str transform; `recover_json` runs them in
order and makes exactly one `json.loads` attempt at the end.
"""

import json
import re
from typing import Any, Callable, Tuple

_OPENING_FENCE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_CLOSING_FENCE = re.compile(r"\s*```$")
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")


def strip_whitespace(text: str) -> str:
    return text.strip()


def strip_code_fences(text: str) -> str:
    text = _OPENING_FENCE.sub("", text)
    return _CLOSING_FENCE.sub("", text)


def extract_first_object(text: str) -> str:
    """
    Return the first balanced {...} span, ignoring braces inside strings.
    Unbalanced or brace-free input is returned from the first "{" on (or
    unchanged), so the final parse reports the real problem.
    """
    start = text.find("{")
    if start == -1:
        return text

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return text[start:]


def strip_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA.sub(r"\1", text)


RECOVERY_STEPS: Tuple[Callable[[str], str], ...] = (
    strip_whitespace,
    strip_code_fences,
    extract_first_object,
    strip_trailing_commas,
)


def clean_json_text(text: str) -> str:
    for step in RECOVERY_STEPS:
        text = step(text)
    return text


def recover_json(text: str) -> Any:
    """Raises json.JSONDecodeError when nothing parseable survives the pipeline."""
    return json.loads(clean_json_text(text))
