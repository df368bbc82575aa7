"""Best-effort JSON object recovery from free-form model output."""

from __future__ import annotations

import json
import re

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_DECODER = json.JSONDecoder()


def extract_json_object(stdout_text: str) -> dict[str, object] | None:
    """Return the first JSON object found in ``stdout_text``.

    Fenced ```json blocks win; otherwise the first ``{`` that starts a
    decodable object is used. Model output is untrusted, so anything that is
    not a JSON object yields ``None``.
    """

    text = stdout_text.strip()
    if not text:
        return None

    for match in _FENCED_BLOCK.finditer(text):
        payload = _try_load_dict(match.group(1).strip())
        if payload is not None:
            return payload

    start = text.find("{")
    while start != -1:
        try:
            parsed, _ = _DECODER.raw_decode(text, start)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
        start = text.find("{", start + 1)
    return None


def _try_load_dict(raw: str) -> dict[str, object] | None:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed
