"""Pool registry: the process-wide set of assembled pools and feeds.

Pools are keyed by id (anchor address), feeds by (pool id, token id). The
registry is only changed through merge() and reload(); every other call site
reads. Both mutations are synchronous, so under asyncio each one is atomic
with respect to concurrent discovery rounds.

Merge rules:
- A pool id already present is kept; the incoming copy is skipped.
- A reserve token must report the same decimals in every stored pool. An
  incoming pool that disagrees with the registry, or with another incoming
  pool in the same batch, is rejected and the registry stays as it was.
- A feed key already present is only replaced by a record carrying market
  data the stored record lacks.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

import structlog

from poolview.models.pool import Pool, ReserveFeed
from poolview.models.types import normalize_address

logger = structlog.get_logger()


class PoolStatus(str, Enum):
    """Discovery state of one anchor."""

    UNLOADED = "unloaded"
    DISCOVERING = "discovering"
    LOADED = "loaded"
    FAILED_PERMANENTLY = "failed_permanently"


@dataclass
class MergeResult:
    """What a merge actually stored.

    Attributes:
        added: Pools newly stored
        duplicates: Incoming pools skipped because their id was already stored
        rejected: Incoming pools refused by the decimals guard
        feeds_stored: Feed records newly stored or upgraded
    """

    added: list[Pool] = field(default_factory=list)
    duplicates: list[Pool] = field(default_factory=list)
    rejected: list[Pool] = field(default_factory=list)
    feeds_stored: int = 0


class PoolRegistry:
    """Registry of assembled pools and their reserve feeds."""

    def __init__(self) -> None:
        self._pools: dict[str, Pool] = {}
        self._feeds: dict[tuple[str, str], ReserveFeed] = {}
        self._failed: set[str] = set()
        self._discovering: set[str] = set()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def merge(self, pools: Iterable[Pool], feeds: Iterable[ReserveFeed] = ()) -> MergeResult:
        """Merge a batch of pools and feeds.

        Idempotent and order-insensitive for pools with the same id. Feeds for
        pools that are not stored after the merge are ignored.

        Args:
            pools: Freshly assembled pools
            feeds: Feeds computed for those pools

        Returns:
            What was stored, skipped and rejected
        """
        result = MergeResult()
        incoming: list[Pool] = []
        seen: set[str] = set()
        for pool in pools:
            if pool.id in self._pools or pool.id in seen:
                result.duplicates.append(pool)
            else:
                seen.add(pool.id)
                incoming.append(pool)

        conflicted = self._conflicting_tokens(incoming)
        for pool in incoming:
            bad = [r.contract for r in pool.reserves if r.contract in conflicted]
            if bad:
                logger.warning(
                    "pool_rejected_decimals_mismatch",
                    pool_id=pool.id,
                    tokens=bad,
                    decimals={t: sorted(conflicted[t]) for t in bad},
                )
                result.rejected.append(pool)
                continue
            self._pools[pool.id] = pool
            self._discovering.discard(pool.id)
            self._failed.discard(pool.id)
            result.added.append(pool)

        for feed in feeds:
            if feed.pool_id not in self._pools:
                continue
            existing = self._feeds.get(feed.key)
            if existing is None or (feed.has_market_data and not existing.has_market_data):
                self._feeds[feed.key] = feed
                result.feeds_stored += 1

        if result.added or result.rejected:
            logger.info(
                "registry_merged",
                added=len(result.added),
                duplicates=len(result.duplicates),
                rejected=len(result.rejected),
                feeds_stored=result.feeds_stored,
                total_pools=len(self._pools),
            )
        return result

    def reload(self, anchors: Iterable[str]) -> list[Pool]:
        """Remove pools and feeds for the given anchors ahead of re-fetching them.

        Failed status is cleared so the anchors can be assembled again.

        Returns:
            The pools that were removed
        """
        removed = []
        for anchor in {normalize_address(a) for a in anchors}:
            pool = self._pools.pop(anchor, None)
            if pool is not None:
                removed.append(pool)
            self._failed.discard(anchor)
            self._discovering.discard(anchor)
            for key in [k for k in self._feeds if k[0] == anchor]:
                del self._feeds[key]
        if removed:
            logger.info("registry_reloaded", removed=len(removed), total_pools=len(self._pools))
        return removed

    def mark_discovering(self, anchors: Iterable[str]) -> None:
        for anchor in anchors:
            anchor = normalize_address(anchor)
            if anchor not in self._pools and anchor not in self._failed:
                self._discovering.add(anchor)

    def release(self, anchors: Iterable[str]) -> None:
        """Return anchors whose round aborted to the unloaded state."""
        for anchor in anchors:
            self._discovering.discard(normalize_address(anchor))

    def mark_failed(self, anchors: Iterable[str]) -> None:
        for anchor in anchors:
            anchor = normalize_address(anchor)
            self._discovering.discard(anchor)
            if anchor not in self._pools:
                self._failed.add(anchor)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def status(self, anchor: str) -> PoolStatus:
        anchor = normalize_address(anchor)
        if anchor in self._pools:
            return PoolStatus.LOADED
        if anchor in self._failed:
            return PoolStatus.FAILED_PERMANENTLY
        if anchor in self._discovering:
            return PoolStatus.DISCOVERING
        return PoolStatus.UNLOADED

    @property
    def pools(self) -> list[Pool]:
        return list(self._pools.values())

    @property
    def feeds(self) -> list[ReserveFeed]:
        return list(self._feeds.values())

    @property
    def failed_anchors(self) -> frozenset[str]:
        return frozenset(self._failed)

    @property
    def pool_count(self) -> int:
        return len(self._pools)

    def get_pool(self, pool_id: str) -> Pool | None:
        return self._pools.get(normalize_address(pool_id))

    def get_feed(self, pool_id: str, token_id: str) -> ReserveFeed | None:
        return self._feeds.get((normalize_address(pool_id), normalize_address(token_id)))

    def feeds_for_pool(self, pool_id: str) -> list[ReserveFeed]:
        pool_id = normalize_address(pool_id)
        return [feed for key, feed in self._feeds.items() if key[0] == pool_id]

    def pools_containing(self, token: str) -> list[Pool]:
        token = normalize_address(token)
        return [pool for pool in self._pools.values() if pool.get_reserve(token) is not None]

    def token_decimals(self, token: str) -> int | None:
        """Decimals stored pools agree on for a reserve token, if any hold it."""
        token = normalize_address(token)
        for pool in self._pools.values():
            reserve = pool.get_reserve(token)
            if reserve is not None:
                return reserve.decimals
        return None

    def remaining(self, anchors: Iterable[str]) -> list[str]:
        """Anchors that are neither loaded, being discovered, nor failed."""
        out = []
        for anchor in anchors:
            if self.status(anchor) is PoolStatus.UNLOADED:
                out.append(normalize_address(anchor))
        return out

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _conflicting_tokens(self, incoming: list[Pool]) -> dict[str, set[int]]:
        """Tokens whose decimals disagree, mapped to every value seen."""
        stored: dict[str, int] = {}
        for pool in self._pools.values():
            for reserve in pool.reserves:
                stored.setdefault(reserve.contract, reserve.decimals)

        seen: dict[str, set[int]] = {}
        for pool in incoming:
            for reserve in pool.reserves:
                seen.setdefault(reserve.contract, set()).add(reserve.decimals)
                if reserve.contract in stored:
                    seen[reserve.contract].add(stored[reserve.contract])

        return {token: values for token, values in seen.items() if len(values) > 1}


__all__ = ["PoolRegistry", "PoolStatus", "MergeResult"]
