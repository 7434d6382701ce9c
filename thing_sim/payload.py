# thing_sim/payload.py

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Union


@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class Structured:
    document: Any


Payload = Union[Text, Structured]


def now_iso() -> str:
    return datetime.now().astimezone().isoformat()


def classify(msg: str) -> Payload:
    # Brace-delimited text is treated as a JSON object; anything that fails to
    # parse stays plain text.
    if msg.startswith("{") and msg.endswith("}"):
        try:
            return Structured(json.loads(msg))
        except json.JSONDecodeError:
            return Text(msg)
    return Text(msg)


def envelope(payload: Payload, time: Optional[str] = None) -> Dict[str, Any]:
    message = payload.document if isinstance(payload, Structured) else payload.value
    return {"time": time or now_iso(), "message": message}


def encode(obj: Any) -> bytes:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def parse_object(text: str) -> Dict[str, Any]:
    """Parse a JSON object, raising ValueError for anything else."""
    obj = json.loads(text)
    if not isinstance(obj, dict):
        raise ValueError("expected a JSON object")
    return obj
