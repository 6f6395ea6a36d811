from __future__ import annotations

import re
from pathlib import Path

from briefing_pipeline.jobs.models import ArtifactKind
from briefing_pipeline.utils.io import atomic_write_bytes, atomic_write_text, ensure_dir

_UNSAFE_RE = re.compile(r"[^A-Za-z0-9_]")

# kind -> (subdirectory, file suffix, media type)
LAYOUT: dict[str, tuple[str, str, str]] = {
    ArtifactKind.PRIMARY.value: ("briefing", ".md", "text/markdown; charset=utf-8"),
    ArtifactKind.AUDIO.value: ("podcast", ".mp3", "audio/mpeg"),
}


def sanitize_name(subject: str) -> str:
    name = _UNSAFE_RE.sub("_", str(subject or "").strip())[:80].strip("_")
    return name or "subject"


def media_type(kind: str) -> str:
    return LAYOUT[str(kind)][2]


class ArtifactStore:
    """
    Files produced by jobs, laid out as <root>/<briefing|podcast>/<Subject>_<job_id><suffix>.

    Locations handed out are relative to the root; resolving one never escapes the root.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root).resolve()

    def location_for(self, job_id: str, subject: str, kind: str) -> str:
        subdir, suffix, _ = LAYOUT[str(kind)]
        return f"{subdir}/{sanitize_name(subject)}_{job_id}{suffix}"

    def resolve(self, location: str) -> Path:
        p = (self.root / str(location)).resolve()
        p.relative_to(self.root)  # raises ValueError when outside the root
        return p

    def work_dir(self, job_id: str) -> Path:
        return ensure_dir(self.root / "work" / str(job_id))

    def write_text(self, location: str, text: str) -> Path:
        return atomic_write_text(self.resolve(location), text)

    def write_bytes(self, location: str, data: bytes) -> Path:
        return atomic_write_bytes(self.resolve(location), data)

    def exists(self, location: str) -> bool:
        try:
            return self.resolve(location).is_file()
        except ValueError:
            return False

    def read_bytes(self, location: str) -> bytes:
        return self.resolve(location).read_bytes()
