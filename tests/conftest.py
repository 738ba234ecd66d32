from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure `import movie_recs...` works when pytest uses importlib import mode.
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from movie_recs.data import GENRES  # noqa: E402


def make_item_row(movie_id: int, title: str, genres: set[str]) -> str:
    """A full 24-field `u.item` row with the given genre flags set."""
    flags = ["1" if g in genres else "0" for g in GENRES]
    return "|".join([str(movie_id), title, "01-Jan-1995", "", "http://us.imdb.com/M/title-exact?x", *flags])


MOVIES = [
    (1, "Toy Story (1995)", {"Animation", "Children's", "Comedy"}),
    (2, "GoldenEye (1995)", {"Action", "Adventure", "Thriller"}),
    (3, "Four Rooms (1995)", {"Thriller"}),
    (4, "Get Shorty (1995)", {"Action", "Comedy", "Drama"}),
    (5, "Copycat (1995)", {"Crime", "Drama", "Thriller"}),
    (242, "Kolya (1996)", {"Comedy"}),
]

RATINGS = [
    (196, 242, 3, 881250949),
    (186, 1, 5, 891717742),
    (22, 2, 1, 878887116),
    (244, 3, 2, 880606923),
    (166, 4, 1, 886397596),
    (196, 1, 4, 881251955),
    (186, 5, 4, 891718136),
    (22, 242, 2, 878888016),
    (244, 4, 5, 880604379),
    (166, 5, 3, 886398217),
    (196, 3, 4, 881252033),
    (22, 4, 3, 878887810),
]


@pytest.fixture()
def item_text() -> str:
    return "\n".join(make_item_row(mid, title, genres) for mid, title, genres in MOVIES) + "\n"


@pytest.fixture()
def rating_text() -> str:
    return "\n".join(f"{u}\t{m}\t{r}\t{ts}" for u, m, r, ts in RATINGS) + "\n"


@pytest.fixture()
def raw_dir(tmp_path: Path, item_text: str, rating_text: str) -> Path:
    d = tmp_path / "data" / "raw"
    d.mkdir(parents=True)
    (d / "u.item").write_text(item_text, encoding="latin-1")
    (d / "u.data").write_text(rating_text, encoding="latin-1")
    return d
