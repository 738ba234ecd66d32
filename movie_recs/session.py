"""Recommender session: the caller-owned context for load, train, predict and content ranking."""

from __future__ import annotations

import logging
from pathlib import Path
from threading import Lock

from .config import AppConfig, load_config
from .content import ContentMatch, recommend_by_content
from .data import MovieLensData, build_dataset, load_data
from .errors import NotFoundError, NotReadyError, TrainError
from .mf.predict import ModelSnapshot, Prediction
from .mf.train import CancellationToken, EpochCallback, MFTrainConfig, TrainResult, train_model, train_model_async
from .utils import setup_logging


logger = logging.getLogger(__name__)


class RecommenderSession:
    """Owns one loaded dataset and at most one published model.

    Every training run takes a new generation number. Its model is published
    only if no newer run (or data reload) started in the meantime, and
    predictions read a single immutable `ModelSnapshot`, so a retrain can
    never hand a reader half-updated parameters.
    """

    def __init__(self, *, config: AppConfig | None = None, device: str | None = None) -> None:
        self.config = config if config is not None else AppConfig(repo_root=Path.cwd())
        self.device = device

        self._lock = Lock()
        self._data: MovieLensData | None = None
        self._snapshot: ModelSnapshot | None = None
        self._generation = 0

    @classmethod
    def from_config(cls, path: Path | str | None = None, *, device: str | None = None) -> "RecommenderSession":
        config = load_config(path)
        setup_logging(config.log_level)
        return cls(config=config, device=device)

    @property
    def data(self) -> MovieLensData | None:
        return self._data

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def snapshot(self) -> ModelSnapshot | None:
        """The currently published model, if any."""
        return self._snapshot

    @property
    def is_ready(self) -> bool:
        return self._snapshot is not None

    # ----- Data -----

    def load_data(self) -> MovieLensData:
        """Load `u.item` / `u.data` from the configured raw directory (LoadError on failure)."""
        data = load_data(self.config.paths)
        self._replace_data(data)
        return data

    def load_text(self, item_text: str, rating_text: str) -> MovieLensData:
        """Load from already-fetched file contents. An empty rating set is accepted here."""
        data = build_dataset(item_text, rating_text)
        self._replace_data(data)
        return data

    def _replace_data(self, data: MovieLensData) -> None:
        with self._lock:
            self._data = data
            self._generation += 1
            self._snapshot = None
        logger.info(
            "Session data replaced: users=%d movies=%d ratings=%d generation=%d",
            data.num_users,
            data.num_movies,
            len(data.ratings),
            self._generation,
        )

    # ----- Training -----

    def _begin_training(self) -> tuple[int, MovieLensData]:
        with self._lock:
            if self._data is None:
                raise TrainError("No data loaded; call load_data() first.")
            if not self._data.ratings:
                raise TrainError("Ratings data is empty.")
            self._generation += 1
            self._snapshot = None
            return self._generation, self._data

    def _publish(self, generation: int, data: MovieLensData, result: TrainResult) -> bool:
        with self._lock:
            if generation != self._generation:
                logger.warning(
                    "Discarding model from stale training run generation=%d (current=%d)",
                    generation,
                    self._generation,
                )
                return False
            self._snapshot = ModelSnapshot(generation=generation, model=result.model, data=data)
        logger.info("Model ready: generation=%d final_loss=%.4f", generation, result.final_loss)
        return True

    def train(
        self,
        *,
        cfg: MFTrainConfig | None = None,
        on_epoch_end: EpochCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> TrainResult:
        """Train a fresh model on the loaded data and publish it when done."""
        generation, data = self._begin_training()
        result = train_model(
            data,
            cfg or self.config.mf,
            on_epoch_end=on_epoch_end,
            cancel_token=cancel_token,
            device=self.device,
        )
        self._publish(generation, data, result)
        return result

    async def train_async(
        self,
        *,
        cfg: MFTrainConfig | None = None,
        on_epoch_end: EpochCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> TrainResult:
        """Async `train`: yields to the running event loop once per epoch."""
        generation, data = self._begin_training()
        result = await train_model_async(
            data,
            cfg or self.config.mf,
            on_epoch_end=on_epoch_end,
            cancel_token=cancel_token,
            device=self.device,
        )
        self._publish(generation, data, result)
        return result

    # ----- Inference -----

    def predict(self, user_id: int, movie_id: int) -> Prediction:
        """Predicted rating in [1, 5]. NotReadyError before training completes."""
        snapshot = self._snapshot
        if snapshot is None:
            raise NotReadyError("Model is still training. Please try again in a moment.")
        return snapshot.predict(user_id, movie_id)

    def recommend_by_content(self, movie_id: int, k: int | None = None) -> list[ContentMatch]:
        """Top-`k` movies by genre similarity to `movie_id` (k defaults to config content.top_k)."""
        data = self._data
        if data is None:
            raise NotFoundError(f"Unknown movieId: {movie_id!r} (no data loaded)")
        reference = data.movie(movie_id)
        top_k = self.config.content.top_k if k is None else int(k)
        return recommend_by_content(reference, data.movies, k=top_k)
