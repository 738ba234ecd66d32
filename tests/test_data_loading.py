from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from movie_recs.data import GENRES, IdRemap, build_dataset, load_data, parse_item_text, parse_rating_text
from movie_recs.errors import LoadError, NotFoundError
from movie_recs.paths import ProjectPaths


def test_kolya_rows_parse_to_movie_and_rating() -> None:
    data = build_dataset("242|Kolya (1996)|0|0|0|0|0|0|0|1|0\n", "196\t242\t3\t881250949\n")

    movie = data.movie(242)
    assert movie.movie_id == 242
    assert movie.title == "Kolya (1996)"

    assert len(data.ratings) == 1
    rating = data.ratings[0]
    assert rating.user_id == 196
    assert rating.movie_id == 242
    assert rating.rating == 3.0
    assert isinstance(rating.rating, float)


def test_full_item_row_reads_genres_from_trailing_flags(item_text: str) -> None:
    movies, _ = parse_item_text(item_text)
    by_id = {m.movie_id: m for m in movies}

    assert by_id[1].genres == frozenset({"Animation", "Children's", "Comedy"})
    assert by_id[3].genres == frozenset({"Thriller"})


def test_movie_indices_are_a_bijection_in_first_seen_order(item_text: str) -> None:
    movies, remap = parse_item_text(item_text)

    assert len(remap) == len(movies)
    assert sorted(remap.index_by_id.values()) == list(range(len(movies)))
    assert [remap.id_at(i) for i in range(len(remap))] == [m.movie_id for m in movies]
    assert list(remap) == [1, 2, 3, 4, 5, 242]


def test_user_indices_follow_ascending_user_id(item_text: str, rating_text: str) -> None:
    data = build_dataset(item_text, rating_text)

    assert data.user_ids == (22, 166, 186, 196, 244)
    assert data.user_remap.index_of(22) == 0
    assert data.user_remap.index_of(244) == 4


def test_rating_indices_resolve_through_remaps(item_text: str, rating_text: str) -> None:
    data = build_dataset(item_text, rating_text)

    for r in data.ratings:
        assert data.user_remap.id_at(r.user_index) == r.user_id
        assert data.movie_remap.id_at(r.movie_index) == r.movie_id
        assert data.movies[r.movie_index].movie_id == r.movie_id


def test_malformed_rows_are_skipped_silently() -> None:
    items = "\n".join(
        [
            "1|Toy Story (1995)|0|0|0|1",
            "not-a-number|Broken",
            "lonely-field",
            "",
            "1|Duplicate Toy Story",
            "2|GoldenEye (1995)",
        ]
    )
    movies, remap = parse_item_text(items)
    assert [m.movie_id for m in movies] == [1, 2]
    assert movies[0].title == "Toy Story (1995)"

    ratings_text = "\n".join(
        [
            "10\t1\t4",
            "11\t2",  # too few fields
            "x\t1\t3",  # bad user id
            "12\t1\tgood",  # bad rating
            "13\t1\tnan",  # non-finite
            "14\t1\t7",  # out of range
            "15\t999\t3",  # unknown movie
            "16\t2\t2.5",
        ]
    )
    ratings, users = parse_rating_text(ratings_text, remap)
    assert [(r.user_id, r.movie_id, r.rating) for r in ratings] == [(10, 1, 4.0), (16, 2, 2.5)]
    assert list(users) == [10, 16]


def test_windows_line_endings_are_accepted() -> None:
    data = build_dataset("1|Toy Story (1995)\r\n2|GoldenEye (1995)\r\n", "5\t2\t4\r\n")
    assert [m.title for m in data.movies] == ["Toy Story (1995)", "GoldenEye (1995)"]
    assert data.ratings[0].movie_index == 1


def test_item_rows_of_mixed_width_keep_their_own_genre_layout() -> None:
    western = "|".join("1" if g == "Western" else "0" for g in GENRES)
    items = "\n".join(
        [
            "7|Short Row (1995)|0|1",
            "8|Full Row (1995)|01-Jan-1995||http://us.imdb.com/x|" + western,
            '9|"Quoted" Title (1996)',
        ]
    )
    movies, _ = parse_item_text(items)

    assert [m.movie_id for m in movies] == [7, 8, 9]
    assert movies[0].genres == frozenset({"Action"})
    assert movies[1].genres == frozenset({"Western"})
    assert movies[2].title == '"Quoted" Title (1996)'


def test_non_whole_number_ids_are_malformed() -> None:
    movies, remap = parse_item_text("1.0|Decimal Id\n 3 |Padded Id\n1e2|Exponent Id\n")
    assert [m.movie_id for m in movies] == [3]

    ratings, users = parse_rating_text("5\t3\t4\n6.5\t3\t4\n7\t3.0\t4\n8\t3\tinf\n", remap)
    assert [(r.user_id, r.movie_id) for r in ratings] == [(5, 3)]
    assert list(users) == [5]


def test_empty_rating_text_builds_an_empty_dataset(item_text: str) -> None:
    data = build_dataset(item_text, "")
    assert data.num_movies == 6
    assert data.num_users == 0
    assert data.ratings == ()
    assert data.ratings_frame().empty


def test_ratings_frame_columns(item_text: str, rating_text: str) -> None:
    df = build_dataset(item_text, rating_text).ratings_frame()
    assert list(df.columns) == ["userId", "movieId", "rating", "user_idx", "movie_idx"]
    assert len(df) == 12
    assert df["rating"].between(1.0, 5.0).all()


def test_movies_by_title_is_case_insensitive() -> None:
    data = build_dataset("1|beta\n2|Alpha\n3|alpha two\n", "")
    assert [m.title for m in data.movies_by_title()] == ["Alpha", "alpha two", "beta"]


def test_unknown_movie_lookup_raises_not_found(item_text: str) -> None:
    data = build_dataset(item_text, "")
    with pytest.raises(NotFoundError):
        data.movie(123456)


def test_id_remap_rejects_duplicates() -> None:
    with pytest.raises(ValueError):
        IdRemap.from_ordered([3, 1, 3])
    assert list(IdRemap.from_sorted([3, 1, 3])) == [1, 3]


def test_id_remap_only_resolves_exact_integers() -> None:
    remap = IdRemap.from_ordered([242, 196])

    assert remap.index_of(196) == 1
    assert remap.index_of(196.0) == 1
    assert remap.index_of(np.int64(242)) == 0
    for bad in (196.9, 242.5, "196", True, None, float("nan"), float("inf")):
        assert remap.index_of(bad) is None
        assert bad not in remap


def test_load_data_reads_files(raw_dir: Path) -> None:
    data = load_data(ProjectPaths.from_repo_root(raw_dir.parent.parent))
    assert data.num_movies == 6
    assert data.num_users == 5
    assert len(data.ratings) == 12


def test_load_data_missing_file_raises_load_error(raw_dir: Path) -> None:
    (raw_dir / "u.data").unlink()
    with pytest.raises(LoadError, match="u.data"):
        load_data(ProjectPaths.from_repo_root(raw_dir.parent.parent))


def test_load_data_with_no_valid_ratings_raises_load_error(raw_dir: Path) -> None:
    (raw_dir / "u.data").write_text("garbage\nalso\tgarbage\n", encoding="latin-1")
    with pytest.raises(LoadError):
        load_data(ProjectPaths.from_repo_root(raw_dir.parent.parent))
