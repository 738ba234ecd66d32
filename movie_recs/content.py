"""Content-based recommendations from genre overlap.

Genres are treated as binary indicator vectors, so cosine similarity reduces
to |a & b| / sqrt(|a| * |b|). No model state or training is involved.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import AbstractSet, Iterable

from .data import Movie


@dataclass(frozen=True)
class ContentMatch:
    movie: Movie
    score: float


def genre_cosine_similarity(a: AbstractSet[str], b: AbstractSet[str]) -> float:
    """Cosine similarity of two genre sets; 0.0 when either set is empty."""
    if not a or not b:
        return 0.0
    return len(a & b) / math.sqrt(len(a) * len(b))


def recommend_by_content(reference: Movie, candidates: Iterable[Movie], *, k: int = 2) -> list[ContentMatch]:
    """Rank `candidates` by genre similarity to `reference` and keep the top `k`.

    The reference movie itself is never returned. Ties keep candidate order.
    """
    if int(k) < 0:
        raise ValueError(f"k must be >= 0, got {k}")

    scored = [
        ContentMatch(movie=movie, score=genre_cosine_similarity(reference.genres, movie.genres))
        for movie in candidates
        if movie.movie_id != reference.movie_id
    ]
    # sorted() is stable, which gives the tie-break.
    scored.sort(key=lambda m: m.score, reverse=True)
    return scored[: int(k)]
