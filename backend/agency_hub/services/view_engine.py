"""
AggregationView: one screen's merged data, filter state and selection.

A view owns everything for one (user, view) pair: the merged summary and
records for the selected agencies, the ViewState driving the pipeline, the
QueryContext driving the fetch, the selection set and the fetch coordinator.
Filter state is written to the session store after every change.
"""
import asyncio
import logging
import time
from collections import OrderedDict
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from agency_hub.core.config import settings
from agency_hub.core.exceptions import FetchFailedError, MutationValidationError, UnknownRecordError
from agency_hub.schemas.record import Record
from agency_hub.schemas.summary import CategorySummary, MergedSummary, OverallTotals, RollupEntry
from agency_hub.schemas.tenant import Tenant
from agency_hub.schemas.view_state import (
    DateRange,
    PersistedViewState,
    QueryContext,
    RangeFilter,
    SelectionBanner,
    SortConfig,
    SortDirection,
    ViewSnapshot,
    ViewState,
    ViewStateUpdate,
)
from agency_hub.services import pipeline
from agency_hub.services.aggregation import merge_records, merge_tenant_summaries
from agency_hub.services.date_ranges import preset_range
from agency_hub.services.export import records_to_csv
from agency_hub.services.fetch import FailurePolicy, ParallelFetchCoordinator
from agency_hub.services.persistence import SessionPersistenceAdapter
from agency_hub.services.rollups import rank_categories, rollup_by
from agency_hub.services.selection import SelectionManager
from agency_hub.services.sources import ViewDataSource
from agency_hub.services.view_configs import ViewConfig

logger = logging.getLogger(__name__)


class AggregationView:

    def __init__(
        self,
        config: ViewConfig,
        source: ViewDataSource,
        user_id: str = "anonymous",
        tenants: Sequence[Tenant] = (),
        persistence: Optional[SessionPersistenceAdapter] = None,
        policy: Optional[str] = None,
        rows_per_page_options: Optional[Sequence[int]] = None,
        default_rows_per_page: Optional[int] = None,
    ):
        self.config = config
        self.source = source
        self.user_id = user_id
        self.persistence = persistence
        self.rows_per_page_options = list(rows_per_page_options or settings.ROWS_PER_PAGE_OPTIONS)
        self.default_rows_per_page = default_rows_per_page or settings.DEFAULT_ROWS_PER_PAGE
        self.coordinator = ParallelFetchCoordinator(
            FailurePolicy(policy or settings.FETCH_FAILURE_POLICY), name=config.view_id,
        )
        self.selection = SelectionManager()

        self.summary = MergedSummary()
        self.records: List[Record] = []
        self.rollups: Dict[str, List[RollupEntry]] = {}
        self.error: Optional[str] = None
        self.failed_agencies: List[str] = []
        self.loaded = False

        self.tenants: List[Tenant] = list(tenants)
        self.state, self.context = self._load_persisted()

    # ── Defaults & persistence ───────────────────────────────────────

    def default_state(self) -> ViewState:
        return ViewState(rows_per_page=self.default_rows_per_page)

    def default_context(self) -> QueryContext:
        return QueryContext(date_range=preset_range("monthly"), category_id=self.config.default_category)

    def _defaults(self) -> PersistedViewState:
        return PersistedViewState(state=self.default_state(), context=self.default_context())

    @property
    def tenant_ids(self) -> List[str]:
        return [t.agency_id for t in self.tenants]

    @property
    def storage_key(self) -> Optional[str]:
        if self.persistence is None:
            return None
        return self.persistence.view_key(self.user_id, self.config.view_id, self.tenant_ids)

    def _load_persisted(self) -> Tuple[ViewState, QueryContext]:
        if self.persistence is None:
            persisted = self._defaults()
        else:
            persisted = self.persistence.load(self.storage_key, self._defaults)
        state = persisted.state
        if state.rows_per_page not in self.rows_per_page_options:
            state = state.model_copy(update={"rows_per_page": self.default_rows_per_page})
        return state, persisted.context

    def _persist(self) -> None:
        if self.persistence is None:
            return
        try:
            self.persistence.save(self.storage_key, PersistedViewState(state=self.state, context=self.context))
        except Exception as e:
            logger.warning(f"Could not save view state for {self.config.view_id}: {e}")

    def set_tenants(self, tenants: Sequence[Tenant]) -> bool:
        """
        Switch the agencies this view aggregates over.

        Loads the filter state stored for the new agency scope and drops the
        merged data, so the next read re-fetches. A refresh still in flight
        for the old agencies is discarded. Returns False if unchanged.
        """
        new_ids = [t.agency_id for t in tenants]
        if new_ids == self.tenant_ids:
            self.tenants = list(tenants)
            return False
        self.coordinator.invalidate()
        self.tenants = list(tenants)
        self.state, self.context = self._load_persisted()
        self.summary = MergedSummary()
        self.records = []
        self.rollups = {}
        self.error = None
        self.failed_agencies = []
        self.selection.clear()
        self.loaded = False
        return True

    # ── Fetch cycle ──────────────────────────────────────────────────

    @property
    def loading(self) -> bool:
        return self.coordinator.loading

    async def _fetch_tenant(self, tenant_id: str, context: QueryContext):
        if self.config.has_records:
            summary, records = await asyncio.gather(
                self.source.get_summary(tenant_id, context),
                self.source.get_records(tenant_id, context),
            )
        else:
            summary = await self.source.get_summary(tenant_id, context)
            records = []
        return summary, records

    async def refresh(self) -> bool:
        """
        Fetch every selected agency in parallel and merge the results.

        Returns False when a newer refresh superseded this one. On failure the
        previously merged data is kept, `error` is set and the error re-raised.
        """
        tenants = list(self.tenants)
        context = self.context
        names = {t.agency_id: t.agency_name for t in tenants}

        try:
            batch = await self.coordinator.fetch_all(
                [t.agency_id for t in tenants],
                lambda tenant_id: self._fetch_tenant(tenant_id, context),
            )
        except FetchFailedError as e:
            self.error = str(e)
            self.failed_agencies = sorted(e.failures)
            raise

        if batch is None:
            return False

        summaries = [summary for summary, _ in batch.results.values()]
        self.summary = merge_tenant_summaries(summaries)
        self.records = merge_records({tid: records for tid, (_, records) in batch.results.items()}, names)
        self.rollups = self._compute_rollups()
        self.failed_agencies = sorted(batch.failures)
        self.error = (
            f"Showing partial results; failed agencies: {', '.join(self.failed_agencies)}"
            if batch.failures else None
        )
        self.selection.reconcile(r.key for r in self.records)
        self.loaded = True
        self._clamp_page()
        self._persist()
        return True

    async def ensure_loaded(self) -> None:
        if not self.loaded:
            await self.refresh()

    def _compute_rollups(self) -> Dict[str, List[RollupEntry]]:
        rollups = {
            name: rollup_by(self.records, spec.key_field, spec.amount_field, spec.label_field)
            for name, spec in self.config.rollups.items()
        }
        for dim in self.config.ranked_dimensions:
            rollups[dim] = [
                RollupEntry(key=c.id or c.label, label=c.label, total=c.total, count=c.records)
                for c in rank_categories(self.summary.dimensions.get(dim, []))
            ]
        return rollups

    def status_groups(self) -> Dict[str, OverallTotals]:
        status = self.summary.dimensions.get("status", [])
        groups: Dict[str, OverallTotals] = {}
        for name, labels in self.config.status_groups.items():
            members: List[CategorySummary] = [c for c in status if c.label in labels]
            groups[name] = OverallTotals(
                total=sum((c.total for c in members), Decimal("0")),
                records=sum(c.records for c in members),
            )
        return groups

    # ── Pipeline ─────────────────────────────────────────────────────

    def _pipeline_config(self) -> pipeline.PipelineConfig:
        if self.config.pipeline is None:
            raise MutationValidationError(f"View {self.config.view_id} has no record list")
        return self.config.pipeline

    def result(self) -> pipeline.PipelineResult:
        if self.config.pipeline is None:
            return pipeline.PipelineResult(matching=[], page=[], total_matching=0, total_pages=0)
        return pipeline.run_pipeline(self.records, self.state, self.config.pipeline)

    def matching(self) -> List[Record]:
        return self.result().matching

    def _clamp_page(self) -> None:
        pages = self.result().total_pages
        page = min(self.state.current_page, max(pages, 1))
        if page != self.state.current_page:
            self.state = self.state.model_copy(update={"current_page": page})

    def _update(self, reset_page: bool = True, **changes: Any) -> None:
        if reset_page:
            changes["current_page"] = 1
        self.state = self.state.model_copy(update=changes)
        self._persist()

    # ── Filter setters ───────────────────────────────────────────────

    def set_search(self, term: str) -> None:
        self._update(search_term=term or "")

    def set_facet(self, name: str, values: Sequence[str]) -> None:
        if name not in self._pipeline_config().facets:
            raise MutationValidationError(f"Unknown filter: {name}")
        facets = dict(self.state.facets)
        unique = list(dict.fromkeys(str(v) for v in values))
        if unique:
            facets[name] = unique
        else:
            facets.pop(name, None)
        self._update(facets=facets)

    def toggle_facet_value(self, name: str, value: str) -> None:
        current = list(self.state.facets.get(name, []))
        if value in current:
            current.remove(value)
        else:
            current.append(value)
        self.set_facet(name, current)

    def set_toggle(self, name: str, choice: str) -> None:
        tri_state = self._pipeline_config().tri_states.get(name)
        if tri_state is None:
            raise MutationValidationError(f"Unknown filter: {name}")
        if choice not in (pipeline.ALL, tri_state.on, tri_state.off):
            raise MutationValidationError(
                f"Filter {name} must be one of: {pipeline.ALL}, {tri_state.on}, {tri_state.off}"
            )
        toggles = dict(self.state.toggles)
        if choice == pipeline.ALL:
            toggles.pop(name, None)
        else:
            toggles[name] = choice
        self._update(toggles=toggles)

    def set_range(self, name: str, start: Optional[float] = None, end: Optional[float] = None,
                  label: Optional[str] = None) -> None:
        if name not in self._pipeline_config().ranges:
            raise MutationValidationError(f"Unknown range filter: {name}")
        if start is not None and end is not None and start > end:
            start, end = end, start
        ranges = dict(self.state.ranges)
        if start is None and end is None:
            ranges.pop(name, None)
        else:
            ranges[name] = RangeFilter(start=start, end=end, label=label)
        self._update(ranges=ranges)

    def set_sort(self, key: Optional[str], direction: SortDirection = SortDirection.ASC) -> None:
        sort = SortConfig(key=key, direction=direction) if key else None
        self._update(sort=sort)

    def toggle_sort(self, key: str) -> None:
        """Same column flips direction, a new column starts ascending."""
        current = self.state.sort
        if current and current.key == key:
            direction = SortDirection.DESC if current.direction == SortDirection.ASC else SortDirection.ASC
        else:
            direction = SortDirection.ASC
        self.set_sort(key, direction)

    def set_rows_per_page(self, rows: int) -> None:
        if rows not in self.rows_per_page_options:
            raise MutationValidationError(
                f"Rows per page must be one of {', '.join(str(o) for o in self.rows_per_page_options)}"
            )
        self._update(rows_per_page=rows)

    def set_page(self, page: int) -> None:
        pages = self.result().total_pages
        self._update(reset_page=False, current_page=min(max(page, 1), max(pages, 1)))

    def reset_filters(self) -> None:
        self.state = self.default_state().model_copy(update={"rows_per_page": self.state.rows_per_page})
        self._persist()

    def apply_update(self, update: ViewStateUpdate) -> None:
        """Apply a partial state update from the API in one go."""
        if update.reset:
            self.reset_filters()
        if update.search_term is not None:
            self.set_search(update.search_term)
        for name, values in (update.facets or {}).items():
            self.set_facet(name, values)
        for name, choice in (update.toggles or {}).items():
            self.set_toggle(name, choice)
        for name, bounds in (update.ranges or {}).items():
            if bounds is None:
                self.set_range(name)
            else:
                self.set_range(name, bounds.start, bounds.end, bounds.label)
        if update.clear_sort:
            self.set_sort(None)
        elif update.sort is not None:
            self.set_sort(update.sort.key, update.sort.direction)
        if update.rows_per_page is not None:
            self.set_rows_per_page(update.rows_per_page)
        if update.current_page is not None:
            self.set_page(update.current_page)

    # ── Query context ────────────────────────────────────────────────

    def set_query_context(
        self,
        start: Optional[int] = None,
        end: Optional[int] = None,
        category_id: Optional[str] = None,
        preset: Optional[str] = None,
    ) -> None:
        """
        Change the fetch window or category, e.g. when arriving from another view.

        The merged data is marked stale and any refresh in flight for the old
        context is discarded; callers re-fetch with refresh().
        """
        if preset:
            try:
                date_range = preset_range(preset)
            except ValueError as e:
                raise MutationValidationError(str(e)) from e
        elif start is not None or end is not None:
            lo = start if start is not None else self.context.date_range.start
            hi = end if end is not None else self.context.date_range.end
            if lo > hi:
                lo, hi = hi, lo
            date_range = DateRange(start=lo, end=hi)
        else:
            date_range = self.context.date_range

        if category_id is not None:
            if self.config.category_options and category_id not in self.config.category_options:
                raise MutationValidationError(
                    f"Category must be one of: {', '.join(self.config.category_options)}"
                )
            category = category_id or self.config.default_category
        else:
            category = self.context.category_id

        self.coordinator.invalidate()
        self.context = QueryContext(date_range=date_range, category_id=category)
        self.state = self.state.model_copy(update={"current_page": 1})
        self.loaded = False
        self._persist()

    # ── Selection ────────────────────────────────────────────────────

    def _record(self, key: str) -> Record:
        for record in self.records:
            if record.key == key:
                return record
        raise UnknownRecordError(key)

    def toggle_selection(self, key: str) -> bool:
        self._record(key)
        return self.selection.toggle(key)

    def select_page(self) -> None:
        self.selection.select_page(r.key for r in self.result().page)

    def select_all_matching(self) -> None:
        self.selection.select_all_matching(r.key for r in self.matching())

    def clear_selection(self) -> None:
        self.selection.clear()

    def selection_banner(self, result: Optional[pipeline.PipelineResult] = None) -> Optional[SelectionBanner]:
        """Offer "select all N matching" once the whole page is selected but not everything."""
        result = result or self.result()
        page_keys = [r.key for r in result.page]
        matching_keys = [r.key for r in result.matching]
        if self.selection.is_page_selected(page_keys) and not self.selection.is_all_matching_selected(matching_keys):
            return SelectionBanner(page_count=len(page_keys), matching_count=result.total_matching)
        return None

    def selected_records(self) -> List[Record]:
        """Selected rows that still resolve to a current filtered record, in display order."""
        return [r for r in self.matching() if r.key in self.selection]

    # ── Presentation ─────────────────────────────────────────────────

    def snapshot(self) -> ViewSnapshot:
        result = self.result()
        rows = []
        for record in result.page:
            row = record.model_dump(mode="json")
            row["key"] = record.key
            rows.append(row)

        facet_options: Dict[str, List[str]] = {}
        matching_total = Decimal("0")
        if self.config.pipeline is not None:
            facet_options = pipeline.facet_options(self.records, self.config.pipeline)
            if self.config.amount_field:
                matching_total = pipeline.sum_field(result.matching, self.config.amount_field)

        return ViewSnapshot(
            view_id=self.config.view_id,
            loading=self.loading,
            error=self.error,
            failed_agencies=list(self.failed_agencies),
            context=self.context,
            state=self.state,
            summary=self.summary.dimensions,
            overall=self.summary.overall,
            rows=rows,
            total_matching=result.total_matching,
            total_pages=result.total_pages,
            selected_keys=sorted(self.selection.keys),
            is_page_selected=self.selection.is_page_selected(r.key for r in result.page),
            is_all_matching_selected=self.selection.is_all_matching_selected(r.key for r in result.matching),
            banner=self.selection_banner(result),
            rollups=self.rollups,
            facet_options=facet_options,
            matching_total_amount=matching_total,
            status_groups=self.status_groups(),
        )

    def export_csv(self) -> str:
        return records_to_csv(self.selected_records(), self.config.export_columns)

    def navigation_queue(self, key: str) -> Tuple[List[str], int]:
        """Keys of the filtered, sorted set and the position of `key` in it."""
        keys = [r.key for r in self.matching()]
        try:
            return keys, keys.index(key)
        except ValueError:
            raise UnknownRecordError(key) from None

    # ── Mutations ────────────────────────────────────────────────────

    async def delete_record(self, key: str, reason: Optional[str] = None) -> None:
        if not self.config.can_delete:
            raise MutationValidationError(f"Records in {self.config.view_id} cannot be deleted")
        reason = (reason or "").strip()
        if self.config.delete_requires_reason and not reason:
            raise MutationValidationError("A reason is required to delete this record")
        record = self._record(key)

        await self.source.delete_record(record, reason or None)
        await self.refresh()

    async def update_record(self, key: str, patch: Dict[str, Any]) -> None:
        if not self.config.can_update:
            raise MutationValidationError(f"Records in {self.config.view_id} cannot be edited")
        if not patch:
            raise MutationValidationError("Nothing to update")
        record = self._record(key)

        await self.source.update_record(record, patch)
        await self.refresh()


class ViewRegistry:
    """
    In-process views keyed by (user_id, view_id).

    Bounded LRU: adding past `max_views` evicts the least recently used view,
    and views untouched for `idle_ttl` seconds are dropped on the next access.
    """

    def __init__(
        self,
        max_views: Optional[int] = None,
        idle_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_views = max_views if max_views is not None else settings.VIEW_REGISTRY_MAX_VIEWS
        self.idle_ttl = idle_ttl if idle_ttl is not None else settings.VIEW_IDLE_TTL_SECONDS
        self.clock = clock
        self._views: "OrderedDict[Tuple[str, str], AggregationView]" = OrderedDict()
        self._last_used: Dict[Tuple[str, str], float] = {}

    def __len__(self) -> int:
        return len(self._views)

    def __contains__(self, key: object) -> bool:
        return key in self._views

    def _drop(self, key: Tuple[str, str]) -> None:
        view = self._views.pop(key)
        self._last_used.pop(key, None)
        view.coordinator.invalidate()

    def evict_idle(self) -> int:
        """Drop views idle for longer than idle_ttl. Returns how many were dropped."""
        if not self.idle_ttl or self.idle_ttl <= 0:
            return 0
        cutoff = self.clock() - self.idle_ttl
        idle = [key for key, used in self._last_used.items() if used < cutoff]
        for key in idle:
            self._drop(key)
        if idle:
            logger.info(f"Evicted {len(idle)} idle views")
        return len(idle)

    def get(self, user_id: str, view_id: str) -> Optional[AggregationView]:
        self.evict_idle()
        key = (user_id, view_id)
        view = self._views.get(key)
        if view is None:
            return None
        self._views.move_to_end(key)
        self._last_used[key] = self.clock()
        return view

    def add(self, view: AggregationView) -> AggregationView:
        self.evict_idle()
        key = (view.user_id, view.config.view_id)
        if key in self._views:
            self._views.move_to_end(key)
        elif self.max_views > 0:
            while len(self._views) >= self.max_views:
                oldest = next(iter(self._views))
                logger.info(f"Evicting least recently used view {oldest[1]} for user {oldest[0]}")
                self._drop(oldest)
        self._views[key] = view
        self._last_used[key] = self.clock()
        return view

    def clear(self) -> None:
        self._views.clear()
        self._last_used.clear()


registry = ViewRegistry()
