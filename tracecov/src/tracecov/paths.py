"""Config-relative path resolution.

``project.repo_root`` is taken relative to the directory holding the config
file; every service and output path is then taken relative to that root.
Absolute and ``~`` paths are used as given.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def _is_anchored(path: str) -> bool:
    return Path(path).is_absolute() or path.startswith("~")


@dataclass(frozen=True)
class RepoPaths:
    root: Path

    @classmethod
    def for_config(cls, config_path: Path, repo_root: str) -> "RepoPaths":
        if _is_anchored(repo_root):
            return cls(Path(repo_root).expanduser().resolve())
        return cls((config_path.resolve().parent / repo_root).resolve())

    def resolve(self, path: str) -> Path:
        if _is_anchored(path):
            return Path(path).expanduser().resolve()
        return (self.root / path).resolve()

    def resolve_optional(self, path: Optional[str]) -> Optional[Path]:
        return self.resolve(path) if path else None
