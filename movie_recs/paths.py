from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class ProjectPaths:
    raw_dir: Path
    item_path: Path
    ratings_path: Path

    @classmethod
    def from_repo_root(
        cls,
        repo_root: Path,
        *,
        raw_dir: Path | str = "data/raw",
        item_file: str = "u.item",
        ratings_file: str = "u.data",
    ) -> "ProjectPaths":
        raw_dir_p = resolve_path(repo_root, raw_dir)
        return cls(
            raw_dir=raw_dir_p,
            item_path=raw_dir_p / item_file,
            ratings_path=raw_dir_p / ratings_file,
        )


def resolve_path(repo_root: Path, path: Path | str) -> Path:
    """Resolve `path` against `repo_root` unless it is already absolute."""
    p = Path(path)
    if not p.is_absolute():
        p = repo_root / p
    return p.resolve()


def get_repo_root() -> Path:
    """Return repo root by searching upwards for `config.yaml` or `.git`."""
    start = Path.cwd().resolve()
    if start.is_file():
        start = start.parent

    for candidate in (start, *start.parents):
        if (candidate / "config.yaml").is_file() or (candidate / ".git").exists():
            return candidate

    # Fallback: search upwards from this file (useful if called from elsewhere).
    start = Path(__file__).resolve().parent
    for candidate in (start, *start.parents):
        if (candidate / "config.yaml").is_file() or (candidate / ".git").exists():
            return candidate

    raise FileNotFoundError("Could not locate repo root (expected `config.yaml` or `.git`).")
