import json
import re
from typing import Any

from memrag.domain.exceptions import StructuredOutputError

_CODE_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def parse_json_response(text: str) -> Any:
    """Decode the JSON payload of a model reply.

    Tolerates markdown code fences and prose around a single object or array.
    """

    if not text or not text.strip():
        raise StructuredOutputError("Empty response")

    candidate = text.strip()
    fenced = _CODE_FENCE.search(candidate)
    if fenced:
        candidate = fenced.group(1).strip()

    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass

    starts = [i for i in (candidate.find("{"), candidate.find("[")) if i != -1]
    if not starts:
        raise StructuredOutputError(f"No JSON found in response: {text[:80]!r}")

    start = min(starts)
    closing = "}" if candidate[start] == "{" else "]"
    end = candidate.rfind(closing)
    if end <= start:
        raise StructuredOutputError(f"Unterminated JSON in response: {text[:80]!r}")

    try:
        return json.loads(candidate[start:end + 1])
    except json.JSONDecodeError as e:
        raise StructuredOutputError(str(e)) from e
