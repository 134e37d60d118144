"""
Reflection extraction from assistant output.

Two passes over the reply text:

1. every ``DETAILED REFLECTION <n>:`` section, in text order, each running
   until the next detailed label, a ``Reflection:`` label, a ``####``
   delimiter or end of text;
2. the first ``Reflection:`` section, running until ``####`` or end of text,
   tagged ``BRIEF REFLECTION``.

Detailed sections always come first in the result, whatever the position of
the brief one in the source.
"""
from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

BRIEF_REFLECTION = "BRIEF REFLECTION"

_DETAILED_LABEL = r"DETAILED REFLECTION\s*\d+\s*:"

DETAILED_REFLECTION_RE = re.compile(
    _DETAILED_LABEL + r"(.*?)(?=" + _DETAILED_LABEL + r"|Reflection:|####|\Z)",
    re.IGNORECASE | re.DOTALL,
)
BRIEF_REFLECTION_RE = re.compile(r"Reflection:(.*?)(?=####|\Z)", re.IGNORECASE | re.DOTALL)


@dataclass
class Reflection:
    type: str
    content: str


@dataclass
class ReflectionRecord:
    """A Reflection as persisted to the key-value store."""

    key: str
    thread_id: str
    timestamp: str  # ISO-8601, UTC
    type: str
    content: str

    @classmethod
    def from_reflection(
        cls,
        reflection: Reflection,
        thread_id: str,
        now: Optional[datetime] = None,
    ) -> "ReflectionRecord":
        timestamp = _iso_timestamp(now or datetime.now(timezone.utc))
        # suffix keeps keys unique when several reflections share a timestamp
        suffix = uuid.uuid4().hex[:9]
        return cls(
            key=f"reflection:{thread_id}:{timestamp}:{suffix}",
            thread_id=thread_id,
            timestamp=timestamp,
            type=reflection.type,
            content=reflection.content,
        )

    def to_value(self) -> Dict[str, Any]:
        return {
            "threadId": self.thread_id,
            "timestamp": self.timestamp,
            "type": self.type,
            "content": self.content,
        }


def _iso_timestamp(moment: datetime) -> str:
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_reflections(text: str) -> List[Reflection]:
    reflections = [
        Reflection(type=match.group(0).split(":", 1)[0].strip(), content=match.group(1).strip())
        for match in DETAILED_REFLECTION_RE.finditer(text)
    ]

    brief = BRIEF_REFLECTION_RE.search(text)
    if brief:
        reflections.append(Reflection(type=BRIEF_REFLECTION, content=brief.group(1).strip()))

    return reflections
