from __future__ import annotations

from dataclasses import dataclass

import torch

from ..data import MAX_RATING, MIN_RATING, MovieLensData
from ..errors import NotFoundError
from .model import MatrixFactorization


@dataclass(frozen=True)
class Prediction:
    user_id: int
    movie_id: int
    title: str
    rating: float
    raw_rating: float

    def describe(self) -> str:
        return f'Predicted rating for User {self.user_id} on "{self.title}": {self.rating:.2f} / 5'


def clamp_rating(value: float) -> float:
    return min(MAX_RATING, max(MIN_RATING, float(value)))


@dataclass(frozen=True, eq=False)
class ModelSnapshot:
    """A trained model bound to the data it was trained on.

    Published once per completed training run and never mutated afterwards,
    so a reader holding a snapshot always sees one consistent parameter set.
    """

    generation: int
    model: MatrixFactorization
    data: MovieLensData

    def predict(self, user_id: int, movie_id: int) -> Prediction:
        """Predict the rating `user_id` would give `movie_id`, clamped to [1, 5]."""
        user_idx = self.data.user_remap.index_of(user_id)
        movie_idx = self.data.movie_remap.index_of(movie_id)
        if user_idx is None:
            raise NotFoundError(f"Unknown userId: {user_id!r}")
        if movie_idx is None:
            raise NotFoundError(f"Unknown movieId: {movie_id!r}")

        users = torch.tensor([user_idx], dtype=torch.long)
        movies = torch.tensor([movie_idx], dtype=torch.long)
        self.model.check_indices(users, movies)
        with torch.no_grad():
            raw = float(self.model(users, movies).reshape(-1)[0])

        title = self.data.movies[movie_idx].title
        return Prediction(
            user_id=int(user_id),
            movie_id=int(movie_id),
            title=title,
            rating=clamp_rating(raw),
            raw_rating=raw,
        )
