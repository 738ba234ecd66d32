"""YAML configuration for the recommender session."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .mf.train import MFTrainConfig
from .paths import ProjectPaths, get_repo_root

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatasetConfig:
    raw_dir: str = "data/raw"
    item_file: str = "u.item"
    ratings_file: str = "u.data"


@dataclass(frozen=True)
class ContentConfig:
    top_k: int = 2


@dataclass(frozen=True)
class AppConfig:
    repo_root: Path
    dataset: DatasetConfig = field(default_factory=DatasetConfig)
    mf: MFTrainConfig = field(default_factory=MFTrainConfig)
    content: ContentConfig = field(default_factory=ContentConfig)
    log_level: str = "INFO"

    @property
    def paths(self) -> ProjectPaths:
        return ProjectPaths.from_repo_root(
            self.repo_root,
            raw_dir=self.dataset.raw_dir,
            item_file=self.dataset.item_file,
            ratings_file=self.dataset.ratings_file,
        )


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    obj = yaml.safe_load(path.read_text())
    if obj is None:
        return {}
    if not isinstance(obj, dict):
        raise ValueError(f"Expected YAML mapping at {path}, got {type(obj)}")
    return obj


def _section(cfg: dict[str, Any], name: str) -> dict[str, Any]:
    return cfg.get(name, {}) if isinstance(cfg.get(name), dict) else {}


def _optional_int(value: Any) -> int | None:
    return None if value is None else int(value)


def load_config(path: Path | str | None = None) -> AppConfig:
    """Load `config.yaml` into an `AppConfig`.

    Missing sections and keys fall back to defaults. `LOG_LEVEL` in the
    environment overrides `logging.level`.
    """
    if path is None:
        repo_root = get_repo_root()
        config_path = repo_root / "config.yaml"
    else:
        config_path = Path(path).resolve()
        repo_root = config_path.parent

    raw = _load_yaml(config_path)

    dataset_raw = _section(raw, "dataset")
    dataset = DatasetConfig(
        raw_dir=str(dataset_raw.get("raw_dir", DatasetConfig.raw_dir)),
        item_file=str(dataset_raw.get("item_file", DatasetConfig.item_file)),
        ratings_file=str(dataset_raw.get("ratings_file", DatasetConfig.ratings_file)),
    )

    mf_raw = _section(raw, "mf")
    defaults = MFTrainConfig()
    mf = MFTrainConfig(
        latent_dim=int(mf_raw.get("latent_dim", defaults.latent_dim)),
        epochs=int(mf_raw.get("epochs", defaults.epochs)),
        batch_size=int(mf_raw.get("batch_size", defaults.batch_size)),
        lr=float(mf_raw.get("lr", defaults.lr)),
        sample_size=_optional_int(mf_raw.get("sample_size", defaults.sample_size)),
        random_state=_optional_int(mf_raw.get("random_state", defaults.random_state)),
    )

    content_raw = _section(raw, "content")
    content = ContentConfig(top_k=int(content_raw.get("top_k", ContentConfig.top_k)))

    logging_raw = _section(raw, "logging")
    log_level = os.getenv("LOG_LEVEL") or str(logging_raw.get("level", "INFO"))

    logger.debug("Loaded config from %s", config_path)
    return AppConfig(
        repo_root=repo_root,
        dataset=dataset,
        mf=mf,
        content=content,
        log_level=log_level.upper(),
    )
