"""Artifact file naming.

Artifacts are named ``{kind}_{alias}_{timestamp}.{extension}`` with an optional
``.gz`` suffix, e.g. ``postgres_main-db_2024-01-01_00:00:00.000000.sql.gz``.
The timestamp segment has a fixed shape, so a name is parsed by anchoring on it
and the alias is whatever sits between the kind prefix and the timestamp. An
alias that is a prefix of another (``db`` and ``db2``) never matches the other's
files.
"""

import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, ConfigDict
from .models import JobKind

TIMESTAMP_FORMAT = "%Y-%m-%d_%H:%M:%S.%f"
COMPRESSED_SUFFIX = ".gz"

_TIMESTAMP_RE = r"\d{4}-\d{2}-\d{2}_\d{2}:\d{2}:\d{2}\.\d{6}"
_NAME_RE = re.compile(
    r"^(?P<kind>{kinds})_(?P<alias>.+)_(?P<timestamp>{ts})"
    r"\.(?P<extension>[A-Za-z0-9]+)(?P<gz>\.gz)?$".format(
        kinds="|".join(re.escape(k.value) for k in JobKind),
        ts=_TIMESTAMP_RE,
    )
)


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """Return a filesystem-sortable UTC timestamp for a backup run."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


class ArtifactName(BaseModel):
    """Parsed form of an artifact file name."""
    model_config = ConfigDict(frozen=True)

    kind: JobKind
    alias: str
    timestamp: str
    extension: str
    compressed: bool = False

    @property
    def filename(self) -> str:
        name = f"{self.kind.value}_{self.alias}_{self.timestamp}.{self.extension}"
        return name + COMPRESSED_SUFFIX if self.compressed else name

    def path_in(self, directory: Path) -> Path:
        return Path(directory) / self.filename

    @classmethod
    def parse(cls, filename: str) -> Optional["ArtifactName"]:
        """Parse a file name, returning None if it is not an artifact."""
        match = _NAME_RE.match(filename)
        if match is None:
            return None
        return cls(
            kind=JobKind(match.group("kind")),
            alias=match.group("alias"),
            timestamp=match.group("timestamp"),
            extension=match.group("extension"),
            compressed=match.group("gz") is not None,
        )


def belongs_to(filename: str, alias: str) -> bool:
    """Check whether a file name is an artifact of exactly this alias."""
    parsed = ArtifactName.parse(filename)
    return parsed is not None and parsed.alias == alias
