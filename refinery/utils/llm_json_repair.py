import json
import re
from typing import Any, Dict, List, Optional, Tuple

_CLOSERS = {"{": "}", "[": "]"}


class JsonPayloadParseError(ValueError):
    def __init__(self, message: str, trace: Dict[str, Any] | None = None):
        super().__init__(message)
        self.trace = trace or {}


def extract_json_block(text: str, opener: str = "{") -> Optional[str]:
    """Returns the first balanced {...} or [...] block in text, skipping string contents."""
    if not text:
        return None
    closer = _CLOSERS[opener]
    start = None
    depth = 0
    in_str = False
    escape = False
    for i, ch in enumerate(text):
        if start is None:
            if ch == opener:
                start = i
                depth = 1
                in_str = False
                escape = False
            continue
        if in_str:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == "\"":
                in_str = False
            continue
        if ch == "\"":
            in_str = True
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0 and start is not None:
                return text[start : i + 1]
    return None


def clean_json_payload(text: str) -> str:
    cleaned = re.sub(r"```json", "", str(text or ""), flags=re.IGNORECASE)
    cleaned = re.sub(r"```", "", cleaned)
    return cleaned.strip()


def repair_common_json_damage(text: str, opener: str = "{") -> str:
    if not isinstance(text, str):
        return ""
    repaired = clean_json_payload(text)
    if not repaired:
        return repaired
    extracted = extract_json_block(repaired, opener)
    if extracted:
        repaired = extracted
    # Trailing commas before a closing bracket.
    return re.sub(r",(\s*[}\]])", r"\1", repaired)


def _matches_shape(parsed: Any, opener: str) -> bool:
    if opener == "{":
        return isinstance(parsed, dict)
    return isinstance(parsed, list)


def parse_json_with_repair(
    text: str,
    *,
    shape: str = "object",
    actor: str = "llm",
) -> Tuple[Any, Dict[str, Any]]:
    """
    Parses an LLM payload expected to be a JSON object (shape="object") or array
    (shape="array"), trying progressively more aggressive repairs.
    A literal `null` payload is returned as None for either shape.
    """
    opener = "[" if shape == "array" else "{"
    cleaned = clean_json_payload(text or "")
    candidates: List[Tuple[str, str | None]] = [
        ("cleaned", cleaned),
        ("extract_cleaned", extract_json_block(cleaned, opener)),
        ("repaired_cleaned", repair_common_json_damage(cleaned, opener)),
    ]

    parse_error: Exception | None = None
    seen: set[str] = set()
    attempts: List[Dict[str, Any]] = []

    for step, candidate in candidates:
        if not isinstance(candidate, str):
            continue
        blob = candidate.strip()
        if not blob or blob in seen:
            continue
        seen.add(blob)
        attempt_info: Dict[str, Any] = {"step": step, "chars": len(blob)}
        try:
            parsed = json.loads(blob)
        except ValueError as err:
            parse_error = err
            attempt_info["ok"] = False
            attempt_info["error"] = str(err)[:220]
            attempts.append(attempt_info)
            continue
        if parsed is None or _matches_shape(parsed, opener):
            attempt_info["ok"] = True
            attempts.append(attempt_info)
            trace = {
                "actor": actor,
                "used_repair": step == "repaired_cleaned",
                "chosen_step": step,
                "attempts": attempts,
            }
            return parsed, trace
        parse_error = ValueError(f"{actor} JSON payload is not an {shape}")
        attempt_info["ok"] = False
        attempt_info["error"] = f"not_{shape}"
        attempts.append(attempt_info)

    trace = {"actor": actor, "used_repair": False, "chosen_step": None, "attempts": attempts}
    if parse_error:
        raise JsonPayloadParseError(str(parse_error), trace)
    raise JsonPayloadParseError(f"Empty {actor} JSON payload", trace)
