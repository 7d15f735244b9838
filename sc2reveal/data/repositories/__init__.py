"""Repositories : accès en lecture au cache de replays."""

from sc2reveal.data.repositories._arrow_bridge import result_to_polars
from sc2reveal.data.repositories.replay_queries import ReplayQueries

__all__ = [
    "ReplayQueries",
    "result_to_polars",
]
