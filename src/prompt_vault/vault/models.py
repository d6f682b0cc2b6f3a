"""
Vault Data Models
"""

import copy
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from ..chain.steps import StepSpec, steps_from_list, steps_to_list


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class VersionRecord:
    """Immutable snapshot of content as it was at ``version_number``."""
    version_number: int
    content: str
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version_number,
            "content": self.content,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VersionRecord":
        return cls(
            version_number=int(data["version"]),
            content=str(data["content"]),
            timestamp=str(data["timestamp"]),
        )


@dataclass
class Prompt:
    """A named, versioned template."""
    id: str
    title: str
    content: str
    tags: Set[str] = field(default_factory=set)
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)
    current_version: int = 1
    versions: List[VersionRecord] = field(default_factory=list)

    def content_at(self, version_number: int) -> Optional[str]:
        """Content as of ``version_number``, or None if out of range."""
        if version_number == self.current_version:
            return self.content
        for record in self.versions:
            if record.version_number == version_number:
                return record.content
        return None

    def history(self) -> List[VersionRecord]:
        """All recorded versions followed by the current one."""
        return list(self.versions) + [
            VersionRecord(self.current_version, self.content, self.updated_at)
        ]

    def copy(self) -> "Prompt":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "tags": sorted(self.tags),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "current_version": self.current_version,
            "versions": [v.to_dict() for v in self.versions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Prompt":
        return cls(
            id=str(data["id"]),
            title=str(data["title"]),
            content=str(data["content"]),
            tags=set(data.get("tags", [])),
            created_at=data.get("created_at") or utc_now(),
            updated_at=data.get("updated_at") or utc_now(),
            current_version=int(data.get("current_version", 1)),
            versions=[VersionRecord.from_dict(v) for v in data.get("versions", [])],
        )


@dataclass
class ChainDefinition:
    """A stored chain. Version records hold the prior step list as JSON."""
    id: str
    title: str
    steps: List[StepSpec] = field(default_factory=list)
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)
    current_version: int = 1
    versions: List[VersionRecord] = field(default_factory=list)

    def steps_json(self) -> str:
        return json.dumps(steps_to_list(self.steps), sort_keys=True)

    def steps_at(self, version_number: int) -> Optional[List[StepSpec]]:
        if version_number == self.current_version:
            return copy.deepcopy(self.steps)
        for record in self.versions:
            if record.version_number == version_number:
                return steps_from_list(json.loads(record.content))
        return None

    def copy(self) -> "ChainDefinition":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "steps": steps_to_list(self.steps),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "current_version": self.current_version,
            "versions": [v.to_dict() for v in self.versions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChainDefinition":
        return cls(
            id=str(data["id"]),
            title=str(data["title"]),
            steps=steps_from_list(data.get("steps", [])),
            created_at=data.get("created_at") or utc_now(),
            updated_at=data.get("updated_at") or utc_now(),
            current_version=int(data.get("current_version", 1)),
            versions=[VersionRecord.from_dict(v) for v in data.get("versions", [])],
        )
