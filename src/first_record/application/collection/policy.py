"""
RankingPolicy - source priority and Korea keyword set for collection runs.

Loaded from YAML when ``FIRST_RECORD_POLICY_FILE`` points at one:

    source_priority: [bhl, openalex, semantic_scholar, scienceon, kci, riss]
    korea_keywords: [korea, corea, korean, 한국, 조선]
    historical_window: [1700, 1970]
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from first_record.domain.entities import LiteratureItem, SourceId
from first_record.shared.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_PRIORITY: tuple[SourceId, ...] = (
    SourceId.BHL,
    SourceId.OPENALEX,
    SourceId.SEMANTIC_SCHOLAR,
    SourceId.SCIENCEON,
    SourceId.KCI,
    SourceId.RISS,
)

DEFAULT_KOREA_KEYWORDS: tuple[str, ...] = (
    # English, including pre-1950 spellings
    "korea",
    "korean",
    "corea",
    "corean",
    # Korean
    "한국",
    "조선",
    "대한민국",
    "남한",
    # Seas and straits
    "korean waters",
    "korean seas",
    "korea strait",
    "east sea",
    "yellow sea",
    "south sea",
    # Ports and islands, old romanizations included
    "busan",
    "pusan",
    "jeju",
    "cheju",
    "dokdo",
    "ulleungdo",
    "incheon",
    "pohang",
    "tongyeong",
    "yeosu",
    "mokpo",
    "gunsan",
    "sokcho",
    "부산",
    "제주",
    "독도",
    "울릉도",
    "인천",
    "포항",
    "통영",
    "여수",
    "목포",
    "군산",
    "속초",
)

DEFAULT_HISTORICAL_WINDOW = (1700, 1970)


@dataclass(frozen=True)
class RankingPolicy:
    """Ordering rules applied by the aggregator."""

    source_priority: tuple[SourceId, ...] = DEFAULT_SOURCE_PRIORITY
    korea_keywords: tuple[str, ...] = DEFAULT_KOREA_KEYWORDS
    historical_window: tuple[int, int] = DEFAULT_HISTORICAL_WINDOW
    _pattern: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        # Sources missing from the configured order go last, in declaration order
        ordered = list(dict.fromkeys(SourceId(s) for s in self.source_priority))
        ordered.extend(s for s in SourceId if s not in ordered)
        object.__setattr__(self, "source_priority", tuple(ordered))

        keywords = tuple(k.strip().lower() for k in self.korea_keywords if k and k.strip())
        if not keywords:
            raise ConfigurationError("Ranking policy needs at least one Korea keyword")
        object.__setattr__(self, "korea_keywords", keywords)
        object.__setattr__(
            self,
            "_pattern",
            re.compile("|".join(re.escape(k) for k in keywords), re.IGNORECASE),
        )

        start, end = self.historical_window
        if start > end:
            raise ConfigurationError(f"Invalid historical window: {start}-{end}")

    def priority(self, source: SourceId) -> int:
        """Lower is preferred."""
        return self.source_priority.index(source)

    def mentions_korea(self, item: LiteratureItem) -> bool:
        """Whether the title, snippet or venue matches the Korea keyword set."""
        haystack = " ".join(part for part in (item.title, item.snippet, item.venue) if part)
        return bool(self._pattern.search(haystack))

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_priority": [s.value for s in self.source_priority],
            "korea_keywords": list(self.korea_keywords),
            "historical_window": list(self.historical_window),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RankingPolicy:
        try:
            kwargs: dict[str, Any] = {}
            if "source_priority" in data:
                kwargs["source_priority"] = tuple(SourceId(s) for s in data["source_priority"])
            if "korea_keywords" in data:
                kwargs["korea_keywords"] = tuple(str(k) for k in data["korea_keywords"])
            if "historical_window" in data:
                start, end = data["historical_window"]
                kwargs["historical_window"] = (int(start), int(end))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid ranking policy: {e}") from e
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: str | Path) -> RankingPolicy:
        policy_path = Path(path)
        try:
            data = yaml.safe_load(policy_path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot load ranking policy from {policy_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Ranking policy {policy_path} must be a mapping")
        logger.info(f"Loaded ranking policy from {policy_path}")
        return cls.from_dict(data)


def load_policy(path: str | None) -> RankingPolicy:
    """Policy from ``path`` when set, otherwise the defaults."""
    if not path:
        return RankingPolicy()
    return RankingPolicy.from_yaml(path)
