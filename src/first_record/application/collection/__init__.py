"""Literature collection: fan-out search, merging and ranking."""

from .aggregator import LiteratureAggregator, SearchPass
from .names import NameNormalizer, NormalizedName
from .policy import RankingPolicy, load_policy

__all__ = [
    "LiteratureAggregator",
    "NameNormalizer",
    "NormalizedName",
    "RankingPolicy",
    "SearchPass",
    "load_policy",
]
