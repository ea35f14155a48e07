"""
LiteratureAggregator - fan a query out to every source adapter and merge.

Flow for one ``collect(query)``:
1. Expand names (primary + synonyms) and search passes (historical / korea)
2. One adapter call per (source, name, pass), all awaited concurrently
3. Per-source failures are recorded, never propagated to sibling calls
4. Explicit year bounds filter, dedup on normalized title + year
5. Rank per strategy, truncate to ``max_results``

Dedup visits candidates in (source priority, name index, pass index,
position) order, so the surviving copy of a duplicate does not depend on
which call finished first.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from first_record.application.collection.policy import RankingPolicy
from first_record.domain.entities import (
    CollectionResult,
    LiteratureItem,
    LiteratureQuery,
    SearchOptions,
    SearchStrategy,
    SourceId,
)
from first_record.domain.ports import SourceAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchPass:
    """One pass of a collection run."""

    name: str
    include_korea_keyword: bool
    year_from: int | None = None
    year_to: int | None = None


@dataclass(frozen=True)
class _Call:
    source: SourceId
    name_index: int
    pass_index: int
    name: str
    options: SearchOptions


class LiteratureAggregator:
    """
    Merges search results from the configured source adapters.

    Usage:
        aggregator = LiteratureAggregator([OpenAlexClient(), BHLClient(api_key)])
        result = await aggregator.collect(LiteratureQuery("Fistularia petimba"))
    """

    def __init__(
        self,
        adapters: Mapping[SourceId, SourceAdapter] | Iterable[SourceAdapter],
        policy: RankingPolicy | None = None,
    ) -> None:
        if isinstance(adapters, Mapping):
            self._adapters = dict(adapters)
        else:
            self._adapters = {adapter.source_id: adapter for adapter in adapters}
        self._policy = policy or RankingPolicy()

    @property
    def policy(self) -> RankingPolicy:
        return self._policy

    def describe_sources(self) -> list[dict[str, Any]]:
        """Every known source with its configuration state, in priority order."""
        sources = []
        for source in self._policy.source_priority:
            adapter = self._adapters.get(source)
            sources.append(
                {
                    "source": source.value,
                    "priority": self._policy.priority(source),
                    "available": adapter is not None,
                    "configured": bool(adapter is not None and adapter.is_configured),
                }
            )
        return sources

    # =========================================================================
    # Collection
    # =========================================================================

    async def collect(self, query: LiteratureQuery) -> CollectionResult:
        """Run every search for ``query`` and return the merged result."""
        names = query.search_names()
        passes = self.plan_passes(query)

        active: list[SourceId] = []
        skipped: list[SourceId] = []
        for source in self._policy.source_priority:
            if source not in query.enabled_sources:
                continue
            adapter = self._adapters.get(source)
            if adapter is None or not adapter.is_configured:
                skipped.append(source)
            else:
                active.append(source)

        if skipped:
            logger.info(f"Skipping unconfigured sources: {', '.join(s.value for s in skipped)}")

        # Per-call budget is the overall limit: a single call may supply every result
        calls = [
            _Call(
                source=source,
                name_index=name_index,
                pass_index=pass_index,
                name=name,
                options=SearchOptions(
                    max_results=query.max_results,
                    year_from=search_pass.year_from,
                    year_to=search_pass.year_to,
                    include_korea_keyword=search_pass.include_korea_keyword,
                ),
            )
            for source in active
            for name_index, name in enumerate(names)
            for pass_index, search_pass in enumerate(passes)
        ]

        if not calls:
            logger.info(f"No enabled sources for '{query.primary_name}'")
            return CollectionResult(query=query, skipped_sources=skipped)

        logger.info(
            f"Collecting '{query.primary_name}': {len(active)} sources x {len(names)} names "
            f"x {len(passes)} passes = {len(calls)} searches"
        )

        coros = [self._search_one(call) for call in calls]
        outcomes = await asyncio.gather(*coros, return_exceptions=True)

        errors: dict[SourceId, list[str]] = {}
        candidates: list[tuple[tuple[int, int, int, int], LiteratureItem]] = []
        for call, outcome in zip(calls, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(f"{call.source.value} search failed for '{call.name}': {outcome}")
                message = str(outcome) or type(outcome).__name__
                errors.setdefault(call.source, [])
                if message not in errors[call.source]:
                    errors[call.source].append(message)
                continue
            priority = self._policy.priority(call.source)
            for position, item in enumerate(outcome):
                if self._within_query_years(item, query):
                    candidates.append(((priority, call.name_index, call.pass_index, position), item))

        candidates.sort(key=lambda pair: pair[0])
        unique = self._deduplicate(item for _, item in candidates)
        ranked = self.rank(unique, query.strategy)

        result = CollectionResult(
            query=query,
            items=ranked[: query.max_results],
            per_source_errors={source: "; ".join(msgs) for source, msgs in errors.items()},
            total_found=len(ranked),
            skipped_sources=skipped,
        )
        logger.info(
            f"Collected {result.total_found} unique items for '{query.primary_name}' "
            f"(returning {len(result.items)}, {len(result.per_source_errors)} sources failed)"
        )
        return result

    def plan_passes(self, query: LiteratureQuery) -> list[SearchPass]:
        passes = []
        if query.strategy in (SearchStrategy.HISTORICAL, SearchStrategy.BOTH):
            default_from, default_to = self._policy.historical_window
            explicit = query.year_from is not None or query.year_to is not None
            passes.append(
                SearchPass(
                    name="historical",
                    include_korea_keyword=False,
                    year_from=query.year_from if explicit else default_from,
                    year_to=query.year_to if explicit else default_to,
                )
            )
        if query.strategy in (SearchStrategy.KOREA, SearchStrategy.BOTH):
            passes.append(
                SearchPass(
                    name="korea",
                    include_korea_keyword=True,
                    year_from=query.year_from,
                    year_to=query.year_to,
                )
            )
        return passes

    async def _search_one(self, call: _Call) -> list[LiteratureItem]:
        adapter = self._adapters[call.source]
        items = await adapter.search(call.name, call.options)
        return list(items or [])[: call.options.max_results]

    # =========================================================================
    # Merging
    # =========================================================================

    @staticmethod
    def _within_query_years(item: LiteratureItem, query: LiteratureQuery) -> bool:
        if item.year is None:
            return True
        if query.year_from is not None and item.year < query.year_from:
            return False
        if query.year_to is not None and item.year > query.year_to:
            return False
        return True

    @staticmethod
    def _deduplicate(items: Iterable[LiteratureItem]) -> list[LiteratureItem]:
        seen: set[str] = set()
        unique = []
        for item in items:
            key = item.dedup_key
            if key in seen:
                continue
            seen.add(key)
            unique.append(item)
        return unique

    def rank(self, items: list[LiteratureItem], strategy: SearchStrategy) -> list[LiteratureItem]:
        """
        Order merged items.

        historical: year ascending, unknown years last.
        korea / both: items mentioning Korea first, each block by year.
        Ties break on source priority, then title.
        """

        def year_key(item: LiteratureItem) -> tuple[bool, int]:
            return (item.year is None, item.year or 0)

        def tiebreak(item: LiteratureItem) -> tuple[int, str]:
            return (self._policy.priority(item.source), item.title.lower())

        if strategy == SearchStrategy.HISTORICAL:
            return sorted(items, key=lambda i: (year_key(i), tiebreak(i)))
        return sorted(
            items,
            key=lambda i: (not self._policy.mentions_korea(i), year_key(i), tiebreak(i)),
        )
