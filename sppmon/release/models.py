import re
import json
from pathlib import Path
from datetime import datetime
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from sppmon.config import effective_settings
from sppmon.errors import BuildError

_NAME_RE = re.compile(effective_settings.NAME_PATTERN)


def validate_name(kind: str, value: str) -> str:
    """Rejects app/environment names that would break the release id scheme."""
    if not value or not _NAME_RE.match(value):
        raise BuildError(f"Invalid {kind} name '{value}': only letters, digits, '_' and '-' are allowed.")
    return value


def make_release_id(app: str, environment: str, built_at: datetime) -> str:
    """
    Combines app, environment and build time into one sortable release id.

    The timestamp is fixed-width, so plain string comparison orders ids of the
    same app and environment by recency.
    """
    return f"{app}_{environment}_{built_at.strftime(effective_settings.RELEASE_TIMESTAMP_FORMAT)}"


@dataclass(frozen=True)
class RuntimeEntry:
    id: str
    binary: str
    args: str = ""
    description: str = ""


@dataclass
class RuntimeDescriptor:
    """Launchable services of one release, in declared start order."""
    release_id: str
    services: List[RuntimeEntry] = field(default_factory=list)

    def service_ids(self) -> List[str]:
        return [entry.id for entry in self.services]

    def get(self, service_id: str) -> Optional[RuntimeEntry]:
        return next((entry for entry in self.services if entry.id == service_id), None)

    def to_dict(self) -> Dict[str, Any]:
        return {"release_id": self.release_id, "services": [asdict(entry) for entry in self.services]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RuntimeDescriptor":
        entries = [
            RuntimeEntry(
                id=str(raw["id"]),
                binary=str(raw["binary"]),
                args=str(raw.get("args") or ""),
                description=str(raw.get("description") or ""),
            )
            for raw in data.get("services") or []
        ]
        return cls(release_id=str(data.get("release_id", "")), services=entries)


@dataclass
class Manifest:
    release_id: str
    app: str
    environment: str
    built_at: str
    services: List[str] = field(default_factory=list)
    fragments: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Manifest":
        return cls(
            release_id=data["release_id"],
            app=data["app"],
            environment=data["environment"],
            built_at=data["built_at"],
            services=list(data.get("services") or []),
            fragments=list(data.get("fragments") or []),
        )

    @classmethod
    def load(cls, path: Path) -> "Manifest":
        with Path(path).open("r", encoding="utf-8") as f:
            return cls.from_dict(json.load(f))


@dataclass
class BuildResult:
    release_id: str
    archive_path: Path
    manifest: Manifest
    descriptor: RuntimeDescriptor
    warnings: List[str] = field(default_factory=list)
