import json
import logging
import math
import re

_FENCE_LANG = re.compile(r"```json\s*")
_FENCE = re.compile(r"```\s*")


def _reject_constant(name: str):
    raise ValueError(f"non-finite constant {name}")


def _finite_float(text: str) -> float:
    num = float(text)
    if not math.isfinite(num):
        raise ValueError(f"number out of range: {text}")
    return num


def decode_payload(raw) -> dict | None:
    """
    Pull the JSON object out of a model reply.

    Model output often wraps the payload in prose or markdown fences. Fences are
    stripped, then the span from the first "{" to the last "}" is parsed. Returns
    None when there is no such span or it does not parse. Never raises.
    """
    if not raw or not isinstance(raw, str):
        return None
    cleaned = _FENCE.sub("", _FENCE_LANG.sub("", raw)).strip()
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        # strict=False lets literal control characters inside strings through;
        # NaN, Infinity and numbers that overflow a float are rejected
        data = json.loads(
            cleaned[start:end + 1],
            strict=False,
            parse_constant=_reject_constant,
            parse_float=_finite_float,
        )
    except (ValueError, RecursionError) as e:
        logging.warning(f"Payload parse error: {e} :: {raw[:150]!r}")
        return None
    return data if isinstance(data, dict) else None
