from __future__ import annotations

import torch
import torch.nn as nn

from ..data import MovieLensData


class MatrixFactorization(nn.Module):
    """Bilinear MF model: dot(user_emb, movie_emb) + user_bias + movie_bias.

    Tables hold exactly `n_users` / `n_movies` rows, one per dense index
    produced by the loader's remap tables.
    """

    def __init__(self, n_users: int, n_movies: int, *, latent_dim: int = 20, init_std: float = 0.05) -> None:
        super().__init__()
        if int(n_users) < 1 or int(n_movies) < 1:
            raise ValueError(f"MatrixFactorization needs at least one user and movie (got {n_users}, {n_movies})")
        if int(latent_dim) < 1:
            raise ValueError(f"latent_dim must be >= 1, got {latent_dim}")

        self.n_users = int(n_users)
        self.n_movies = int(n_movies)
        self.latent_dim = int(latent_dim)

        self.user_embed = nn.Embedding(self.n_users, self.latent_dim)
        self.movie_embed = nn.Embedding(self.n_movies, self.latent_dim)

        self.user_bias = nn.Embedding(self.n_users, 1)
        self.movie_bias = nn.Embedding(self.n_movies, 1)

        nn.init.normal_(self.user_embed.weight, std=float(init_std))
        nn.init.normal_(self.movie_embed.weight, std=float(init_std))
        nn.init.zeros_(self.user_bias.weight)
        nn.init.zeros_(self.movie_bias.weight)

    def check_indices(self, user_idx: torch.Tensor, movie_idx: torch.Tensor) -> None:
        """Raise IndexError if any dense index falls outside the embedding tables."""
        for name, idx, size in (("user", user_idx, self.n_users), ("movie", movie_idx, self.n_movies)):
            if idx.numel() == 0:
                continue
            lo = int(idx.min())
            hi = int(idx.max())
            if lo < 0 or hi >= size:
                raise IndexError(f"{name} index out of range [0, {size}): min={lo} max={hi}")

    def forward(self, user_idx: torch.Tensor, movie_idx: torch.Tensor) -> torch.Tensor:
        u = self.user_embed(user_idx)
        m = self.movie_embed(movie_idx)
        dot = (u * m).sum(dim=1, keepdim=True)
        return dot + self.user_bias(user_idx) + self.movie_bias(movie_idx)


def build_model(data: MovieLensData, *, latent_dim: int = 20) -> MatrixFactorization:
    """Fresh, randomly initialised model sized to the dataset's remap tables."""
    return MatrixFactorization(n_users=data.num_users, n_movies=data.num_movies, latent_dim=latent_dim)
