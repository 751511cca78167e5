import json
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from refinery.utils.json_sanitize import to_jsonable

LOG_PATHS: Dict[str, str] = {}


def _ensure_parent_dir(path: str) -> None:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)


def get_log_path(session_id: str, log_dir: str = "logs") -> str:
    if session_id in LOG_PATHS:
        return LOG_PATHS[session_id]
    return os.path.abspath(os.path.join(log_dir, f"session_{session_id}.jsonl"))


def init_session_log(session_id: str, metadata: Optional[Dict[str, Any]] = None, log_dir: str = "logs") -> str:
    path = get_log_path(session_id, log_dir=log_dir)
    _ensure_parent_dir(path)
    # Store absolute path so logging does not depend on cwd.
    LOG_PATHS[session_id] = path

    with open(path, "a", encoding="utf-8") as _:
        pass

    if metadata is not None:
        log_session_event(session_id, "session_init", metadata, log_dir=log_dir)
    return path


def log_session_event(session_id: str, event_type: str, payload: Dict[str, Any], log_dir: str = "logs") -> None:
    path = get_log_path(session_id, log_dir=log_dir)
    _ensure_parent_dir(path)
    event: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event": event_type,
        "payload": to_jsonable(payload),
    }
    with open(path, "a", encoding="utf-8") as f:
        f.write(json.dumps(event, ensure_ascii=False) + "\n")


def read_session_events(session_id: str, log_dir: str = "logs") -> list:
    path = get_log_path(session_id, log_dir=log_dir)
    if not os.path.exists(path):
        return []
    with open(path, "r", encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]
