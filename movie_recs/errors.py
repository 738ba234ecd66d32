"""Error kinds raised by the recommender.

Row-level parse problems are never raised; the loader drops those rows.
"""

from __future__ import annotations


class RecommenderError(Exception):
    """Base class for every error the recommender surfaces to callers."""


class LoadError(RecommenderError):
    """A data file could not be read, or it yielded no usable ratings."""


class TrainError(RecommenderError):
    """Training could not start (no data loaded or an empty training set)."""


class TrainingCancelled(TrainError):
    """Training was cancelled at an epoch boundary."""


class NotReadyError(RecommenderError):
    """Inference was requested before a trained model was published."""


class NotFoundError(RecommenderError, KeyError):
    """A user or movie id is unknown to the loaded dataset."""

    def __str__(self) -> str:
        # KeyError.__str__ quotes its argument; keep plain messages.
        return str(self.args[0]) if self.args else ""
