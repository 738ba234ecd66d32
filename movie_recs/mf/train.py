from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterator

import numpy as np
import pandas as pd
import torch
from torch.utils.data import DataLoader, Dataset

from ..data import MovieLensData
from ..errors import TrainError, TrainingCancelled
from .model import MatrixFactorization, build_model


logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("user_idx", "movie_idx", "rating")


class RatingsDataset(Dataset):
    def __init__(self, user_idx: np.ndarray, movie_idx: np.ndarray, rating: np.ndarray) -> None:
        self.user_idx = user_idx.astype(np.int64, copy=True)
        self.movie_idx = movie_idx.astype(np.int64, copy=True)
        self.rating = rating.astype(np.float32, copy=True)

    def __len__(self) -> int:
        return int(len(self.user_idx))

    def __getitem__(self, i: int) -> dict[str, torch.Tensor]:
        return {
            "users": torch.tensor(self.user_idx[i], dtype=torch.long),
            "movies": torch.tensor(self.movie_idx[i], dtype=torch.long),
            "ratings": torch.tensor(self.rating[i], dtype=torch.float32),
        }


@dataclass(frozen=True)
class MFTrainConfig:
    latent_dim: int = 20
    epochs: int = 6
    batch_size: int = 128
    lr: float = 1e-3
    # Upper bound on ratings used per run; None trains on all of them.
    sample_size: int | None = 3000
    random_state: int | None = None

    def __post_init__(self) -> None:
        if self.latent_dim < 1:
            raise ValueError(f"latent_dim must be >= 1, got {self.latent_dim}")
        if self.epochs < 1:
            raise ValueError(f"epochs must be >= 1, got {self.epochs}")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.lr <= 0:
            raise ValueError(f"lr must be > 0, got {self.lr}")
        if self.sample_size is not None and self.sample_size < 1:
            raise ValueError(f"sample_size must be >= 1 or None, got {self.sample_size}")


@dataclass(frozen=True)
class EpochResult:
    epoch: int  # 1-based
    epochs: int
    loss: float


@dataclass(frozen=True)
class TrainResult:
    model: MatrixFactorization
    history: tuple[EpochResult, ...]
    n_samples: int

    @property
    def final_loss(self) -> float:
        return self.history[-1].loss


class CancellationToken:
    """Cooperative cancel flag, checked by the trainer at epoch boundaries."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


EpochCallback = Callable[[EpochResult], Any]


def _device_from_str(device: str | None) -> torch.device:
    if device is None:
        if torch.cuda.is_available():
            return torch.device("cuda")
        return torch.device("cpu")
    return torch.device(str(device))


def sample_training_subset(
    ratings: pd.DataFrame,
    limit: int | None,
    *,
    random_state: int | None = None,
) -> pd.DataFrame:
    """Uniformly sample up to `limit` rows without replacement.

    Keeps interactive training short; the whole frame is returned when it
    already fits.
    """
    if limit is None or len(ratings) <= int(limit):
        return ratings
    return ratings.sample(n=int(limit), random_state=random_state).reset_index(drop=True)


def iter_training_epochs(
    model: MatrixFactorization,
    ratings: pd.DataFrame,
    cfg: MFTrainConfig,
    *,
    cancel_token: CancellationToken | None = None,
    device: str | None = None,
) -> Iterator[EpochResult]:
    """Fit `model` on `ratings` with Adam + MSE, yielding once per epoch.

    Runs exactly `cfg.epochs` epochs (reshuffled each time); there is no
    validation split or early stopping. The model is left on `device`.
    """
    missing = set(REQUIRED_COLUMNS) - set(ratings.columns)
    if missing:
        raise ValueError(f"ratings missing required columns: {sorted(missing)}")
    if ratings.empty:
        raise TrainError("Ratings data is empty.")

    dataset = RatingsDataset(
        ratings["user_idx"].to_numpy(),
        ratings["movie_idx"].to_numpy(),
        ratings["rating"].to_numpy(),
    )
    model.check_indices(torch.from_numpy(dataset.user_idx), torch.from_numpy(dataset.movie_idx))

    generator = None
    if cfg.random_state is not None:
        generator = torch.Generator().manual_seed(int(cfg.random_state))
    loader = DataLoader(dataset, batch_size=int(cfg.batch_size), shuffle=True, num_workers=0, generator=generator)

    torch_device = _device_from_str(device)
    model.to(torch_device)
    optimizer = torch.optim.Adam(model.parameters(), lr=float(cfg.lr))
    loss_fn = torch.nn.MSELoss()

    logger.info(
        "MF training on device=%s samples=%d epochs=%d batch_size=%d",
        torch_device,
        len(dataset),
        int(cfg.epochs),
        int(cfg.batch_size),
    )
    model.train()
    for epoch in range(int(cfg.epochs)):
        if cancel_token is not None and cancel_token.cancelled:
            logger.info("MF training cancelled before epoch %d/%d", epoch + 1, int(cfg.epochs))
            raise TrainingCancelled(f"Training cancelled before epoch {epoch + 1}/{int(cfg.epochs)}")

        total_loss = 0.0
        n = 0
        for batch in loader:
            users = batch["users"].to(torch_device)
            movies = batch["movies"].to(torch_device)
            ratings_t = batch["ratings"].to(torch_device).view(-1, 1)

            preds = model(users, movies)
            loss = loss_fn(preds, ratings_t)
            optimizer.zero_grad(set_to_none=True)
            loss.backward()
            optimizer.step()

            bs = int(users.shape[0])
            total_loss += float(loss.item()) * bs
            n += bs

        result = EpochResult(epoch=epoch + 1, epochs=int(cfg.epochs), loss=total_loss / max(1, n))
        logger.info("MF epoch=%d/%d loss=%.4f", result.epoch, result.epochs, result.loss)
        yield result

    model.eval()


def _prepare(data: MovieLensData, cfg: MFTrainConfig) -> tuple[MatrixFactorization, pd.DataFrame]:
    if not data.ratings:
        raise TrainError("Ratings data is empty.")

    # Always a fresh model so a retrain never reuses stale weights.
    if cfg.random_state is None:
        model = build_model(data, latent_dim=int(cfg.latent_dim))
    else:
        # Seeded init without touching the process-wide torch generator.
        with torch.random.fork_rng(devices=[]):
            torch.manual_seed(int(cfg.random_state))
            model = build_model(data, latent_dim=int(cfg.latent_dim))
    frame = sample_training_subset(data.ratings_frame(), cfg.sample_size, random_state=cfg.random_state)
    return model, frame


def train_model(
    data: MovieLensData,
    cfg: MFTrainConfig,
    *,
    on_epoch_end: EpochCallback | None = None,
    cancel_token: CancellationToken | None = None,
    device: str | None = None,
) -> TrainResult:
    """Build a fresh model and train it to completion (blocking)."""
    model, frame = _prepare(data, cfg)
    history: list[EpochResult] = []
    for result in iter_training_epochs(model, frame, cfg, cancel_token=cancel_token, device=device):
        history.append(result)
        if on_epoch_end is not None:
            on_epoch_end(result)
    return TrainResult(model=model.cpu().eval(), history=tuple(history), n_samples=len(frame))


async def train_model_async(
    data: MovieLensData,
    cfg: MFTrainConfig,
    *,
    on_epoch_end: EpochCallback | None = None,
    cancel_token: CancellationToken | None = None,
    device: str | None = None,
) -> TrainResult:
    """Like `train_model`, but yields to the event loop after every epoch.

    The epoch boundary is the only suspension point; batches within an epoch
    run without yielding. `on_epoch_end` may be a coroutine function.
    """
    model, frame = _prepare(data, cfg)
    history: list[EpochResult] = []
    for result in iter_training_epochs(model, frame, cfg, cancel_token=cancel_token, device=device):
        history.append(result)
        await asyncio.sleep(0)
        if on_epoch_end is not None:
            ret = on_epoch_end(result)
            if inspect.isawaitable(ret):
                await ret
    return TrainResult(model=model.cpu().eval(), history=tuple(history), n_samples=len(frame))
