"""MovieLens 100k loading: item/rating parsing and dense id remapping.

Notes
-----
Parsing is best-effort: malformed rows are dropped rather than failing the
load. Only an unreadable file or an empty rating set is fatal (`LoadError`).
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Sequence

import numpy as np
import pandas as pd
from sklearn.preprocessing import LabelEncoder

from .errors import LoadError, NotFoundError
from .paths import ProjectPaths


logger = logging.getLogger(__name__)


# Genre flag columns of `u.item`, in file order.
GENRES: tuple[str, ...] = (
    "unknown",
    "Action",
    "Adventure",
    "Animation",
    "Children's",
    "Comedy",
    "Crime",
    "Documentary",
    "Drama",
    "Fantasy",
    "Film-Noir",
    "Horror",
    "Musical",
    "Mystery",
    "Romance",
    "Sci-Fi",
    "Thriller",
    "War",
    "Western",
)

MIN_RATING = 1.0
MAX_RATING = 5.0


@dataclass(frozen=True)
class Movie:
    movie_id: int
    title: str
    genres: frozenset[str] = frozenset()


@dataclass(frozen=True)
class Rating:
    user_id: int
    movie_id: int
    rating: float
    user_index: int
    movie_index: int


@dataclass(frozen=True, eq=False)
class IdRemap:
    """Bidirectional map between sparse source ids and dense indices [0..n)."""

    ids: tuple[int, ...]
    index_by_id: dict[int, int] = field(repr=False)

    def __post_init__(self) -> None:
        if len(self.index_by_id) != len(self.ids):
            raise ValueError("IdRemap ids must be unique")
        for i, sparse_id in enumerate(self.ids):
            if self.index_by_id.get(sparse_id) != i:
                raise ValueError(f"IdRemap is inconsistent at index {i} (id={sparse_id})")

    @classmethod
    def from_ordered(cls, ids: Iterable[int]) -> "IdRemap":
        """Assign dense indices in the given order. Ids must be unique."""
        ordered = tuple(int(i) for i in ids)
        return cls(ids=ordered, index_by_id={sparse_id: i for i, sparse_id in enumerate(ordered)})

    @classmethod
    def from_sorted(cls, ids: Iterable[int]) -> "IdRemap":
        """Assign dense indices in ascending id order (duplicates collapse)."""
        values = np.asarray(list(ids), dtype=np.int64)
        if values.size == 0:
            return cls.from_ordered(())
        encoder = LabelEncoder().fit(values)
        return cls.from_ordered(encoder.classes_.tolist())

    def __len__(self) -> int:
        return len(self.ids)

    def __contains__(self, sparse_id: object) -> bool:
        return self.index_of(sparse_id) is not None

    def __iter__(self) -> Iterator[int]:
        return iter(self.ids)

    def index_of(self, sparse_id: object) -> int | None:
        """Dense index for `sparse_id`, or None when unknown.

        Only exact integers match; 196.9, "196" or True never resolve to an id.
        """
        if isinstance(sparse_id, bool):
            return None
        try:
            as_int = int(sparse_id)  # type: ignore[call-overload]
        except (TypeError, ValueError, OverflowError):
            return None
        if as_int != sparse_id:
            return None
        return self.index_by_id.get(as_int)

    def id_at(self, index: int) -> int:
        """Sparse id stored at dense `index`."""
        if not 0 <= int(index) < len(self.ids):
            raise IndexError(f"dense index {index} out of range [0, {len(self.ids)})")
        return self.ids[int(index)]


@dataclass(frozen=True, eq=False)
class MovieLensData:
    """One full load of the item and rating tables."""

    movies: tuple[Movie, ...]
    ratings: tuple[Rating, ...]
    user_remap: IdRemap
    movie_remap: IdRemap

    @property
    def user_ids(self) -> tuple[int, ...]:
        return self.user_remap.ids

    @property
    def num_users(self) -> int:
        return len(self.user_remap)

    @property
    def num_movies(self) -> int:
        return len(self.movie_remap)

    def movie(self, movie_id: int) -> Movie:
        """Return the movie for `movie_id` (movies are stored in dense-index order)."""
        idx = self.movie_remap.index_of(movie_id)
        if idx is None:
            raise NotFoundError(f"Unknown movieId: {movie_id!r}")
        return self.movies[idx]

    def movies_by_title(self) -> list[Movie]:
        """Movies sorted by title, case-insensitively (for pickers)."""
        return sorted(self.movies, key=lambda m: (m.title.casefold(), m.movie_id))

    def ratings_frame(self) -> pd.DataFrame:
        """Ratings as a DataFrame with columns userId, movieId, rating, user_idx, movie_idx."""
        return pd.DataFrame(
            {
                "userId": np.array([r.user_id for r in self.ratings], dtype=np.int64),
                "movieId": np.array([r.movie_id for r in self.ratings], dtype=np.int64),
                "rating": np.array([r.rating for r in self.ratings], dtype=np.float32),
                "user_idx": np.array([r.user_index for r in self.ratings], dtype=np.int64),
                "movie_idx": np.array([r.movie_index for r in self.ratings], dtype=np.int64),
            }
        )


# Whole-number ids only; "1.0" or "1e3" are malformed, as is anything past int64.
_INT_PATTERN = r"[+-]?\d{1,18}"


def _read_delimited(text: str, sep: str, *, min_fields: int) -> pd.DataFrame:
    """Read delimited text as an all-string frame, one column per field.

    Short rows are padded with NaN, so a missing field and an empty one stay
    distinguishable.
    """
    if not text.strip():
        return pd.DataFrame(columns=range(min_fields), dtype=object)
    n_fields = max(min_fields, max(line.count(sep) for line in text.splitlines()) + 1)
    return pd.read_csv(
        io.StringIO(text),
        sep=sep,
        header=None,
        names=list(range(n_fields)),
        dtype=str,
        keep_default_na=False,
        quoting=csv.QUOTE_NONE,
        skip_blank_lines=True,
        on_bad_lines="skip",
    )


def _int_column(column: pd.Series) -> tuple[pd.Series, pd.Series]:
    """(values, valid mask) for an id column; invalid entries hold 0."""
    stripped = column.str.strip()
    valid = stripped.str.fullmatch(_INT_PATTERN, na=False)
    return stripped.where(valid, "0").astype("int64"), valid


def _parse_genre_flags(fields: Sequence[str]) -> frozenset[str]:
    # Full rows carry release date / IMDb url before the flags, so take the tail.
    if len(fields) >= 2 + len(GENRES):
        flags = fields[-len(GENRES):]
    else:
        flags = fields[2:]
    return frozenset(genre for genre, flag in zip(GENRES, flags) if flag.strip() == "1")


def parse_item_text(text: str) -> tuple[tuple[Movie, ...], IdRemap]:
    """Parse pipe-delimited `u.item` content.

    Movies keep first-seen order, which is also their dense index order.
    """
    frame = _read_delimited(text, "|", min_fields=2)
    movie_ids, valid = _int_column(frame[0])
    valid &= frame[1].notna()
    valid &= ~movie_ids.where(valid).duplicated(keep="first")

    kept = frame[valid]
    movies = tuple(
        Movie(
            movie_id=int(movie_id),
            title=str(row[1]).strip(),
            genres=_parse_genre_flags([v for v in row if isinstance(v, str)]),
        )
        for movie_id, row in zip(movie_ids[valid], kept.itertuples(index=False, name=None))
    )

    skipped = len(frame) - len(kept)
    if skipped:
        logger.debug("Skipped %d malformed item rows", skipped)

    return movies, IdRemap.from_ordered(m.movie_id for m in movies)


def parse_rating_text(text: str, movie_remap: IdRemap) -> tuple[tuple[Rating, ...], IdRemap]:
    """Parse tab-delimited `u.data` content against an already-built movie remap.

    Users are remapped in ascending id order, from the rows that survive parsing.
    """
    frame = _read_delimited(text, "\t", min_fields=3)
    user_ids, user_ok = _int_column(frame[0])
    movie_ids, movie_ok = _int_column(frame[1])
    values = pd.to_numeric(frame[2].str.strip(), errors="coerce").astype("float64")

    valid = user_ok & movie_ok & np.isfinite(values) & values.between(MIN_RATING, MAX_RATING)
    valid &= movie_ids.isin(movie_remap.ids)

    skipped = int((~valid).sum())
    if skipped:
        logger.debug("Skipped %d malformed or unmatched rating rows", skipped)

    rows = pd.DataFrame({"userId": user_ids[valid], "movieId": movie_ids[valid], "rating": values[valid]})
    user_remap = IdRemap.from_sorted(rows["userId"].tolist())
    ratings = tuple(
        Rating(
            user_id=uid,
            movie_id=mid,
            rating=float(value),
            user_index=user_remap.index_by_id[uid],
            movie_index=movie_remap.index_by_id[mid],
        )
        for uid, mid, value in zip(rows["userId"].tolist(), rows["movieId"].tolist(), rows["rating"].tolist())
    )
    return ratings, user_remap


def build_dataset(item_text: str, rating_text: str) -> MovieLensData:
    """Parse raw item/rating text into a `MovieLensData`. May be empty."""
    movies, movie_remap = parse_item_text(item_text)
    ratings, user_remap = parse_rating_text(rating_text, movie_remap)
    logger.info("Parsed MovieLens data: movies=%d users=%d ratings=%d", len(movies), len(user_remap), len(ratings))
    return MovieLensData(movies=movies, ratings=ratings, user_remap=user_remap, movie_remap=movie_remap)


def _read_text(path: Path) -> str:
    try:
        # MovieLens 100k ships latin-1 titles.
        return Path(path).read_text(encoding="latin-1")
    except OSError as exc:
        raise LoadError(f"Unable to load {Path(path).name}: {exc}") from exc


def load_data(paths: ProjectPaths) -> MovieLensData:
    """Read `u.item` and `u.data` from disk and build the dataset.

    Raises `LoadError` when either file cannot be read or no rating row survives parsing.
    """
    item_text = _read_text(paths.item_path)
    rating_text = _read_text(paths.ratings_path)

    data = build_dataset(item_text, rating_text)
    if not data.ratings:
        raise LoadError(f"No valid ratings parsed from {paths.ratings_path}")
    return data
