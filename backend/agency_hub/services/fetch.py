"""
Parallel per-agency fetching.

One request per agency is issued concurrently. Each batch is tagged with a
generation number; a batch that finishes after a newer one was started is
discarded so a slow, stale response can never overwrite fresher data.
"""
import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Generic, Optional, Sequence, TypeVar

from agency_hub.core.exceptions import FetchFailedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FailurePolicy(str, enum.Enum):
    ALL_OR_NOTHING = "all_or_nothing"  # one failed agency fails the batch
    BEST_EFFORT = "best_effort"  # merge the agencies that answered


@dataclass
class FetchBatch(Generic[T]):
    generation: int
    results: Dict[str, T] = field(default_factory=dict)  # in request order
    failures: Dict[str, BaseException] = field(default_factory=dict)

    @property
    def partial(self) -> bool:
        return bool(self.failures)


class ParallelFetchCoordinator:
    """
    Fans one fetch out per agency and gathers the results.

    `loading` is True while the latest batch is in flight. It is cleared in a
    finally block, and only by the batch that is still the latest, so an
    older batch finishing late cannot hide the spinner of a newer one.
    """

    def __init__(self, policy: FailurePolicy = FailurePolicy.ALL_OR_NOTHING, name: str = "view"):
        self.policy = FailurePolicy(policy)
        self.name = name
        self.loading = False
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    def invalidate(self) -> None:
        """Make every batch in flight stale, e.g. after the agencies or query changed."""
        self._generation += 1
        self.loading = False
        logger.info(f"Invalidated in-flight {self.name} fetches (generation now {self._generation})")

    async def fetch_all(
        self,
        tenant_ids: Sequence[str],
        fetch_one: Callable[[str], Awaitable[T]],
    ) -> Optional[FetchBatch]:
        """
        Run fetch_one for every agency concurrently.

        Returns None when the batch was superseded by a newer call. Raises
        FetchFailedError if any agency failed under ALL_OR_NOTHING.
        """
        self._generation += 1
        generation = self._generation
        tenant_ids = list(tenant_ids)
        self.loading = True
        logger.info(f"Fetching {self.name} for {len(tenant_ids)} agencies (generation {generation})")
        try:
            outcomes = await asyncio.gather(
                *(fetch_one(tenant_id) for tenant_id in tenant_ids),
                return_exceptions=True,
            )

            if not self.is_current(generation):
                logger.warning(
                    f"Discarding stale {self.name} fetch: generation {generation}, latest is {self._generation}"
                )
                return None

            batch = FetchBatch(generation=generation)
            for tenant_id, outcome in zip(tenant_ids, outcomes):
                if isinstance(outcome, BaseException):
                    logger.error(f"Fetch failed for agency {tenant_id} ({self.name}): {outcome}")
                    batch.failures[tenant_id] = outcome
                else:
                    batch.results[tenant_id] = outcome

            if batch.failures:
                if self.policy == FailurePolicy.ALL_OR_NOTHING:
                    raise FetchFailedError(batch.failures)
                logger.warning(
                    f"Merging {len(batch.results)} of {len(tenant_ids)} agencies for {self.name}, "
                    f"failed: {', '.join(batch.failures)}"
                )

            logger.info(f"Fetched {self.name} generation {generation}")
            return batch
        finally:
            if self.is_current(generation):
                self.loading = False
