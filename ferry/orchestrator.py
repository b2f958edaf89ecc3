"""Migration orchestrator: the resumable extract → transform → load state machine.

Each orchestrator owns one migration id and one work directory. State is
persisted at every phase boundary and a checksummed snapshot is written when
a phase completes, so an interrupted run continues from the last completed
phase instead of starting over. ``failed`` is terminal.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from ferry.capabilities import get_target_limits, platform_name
from ferry.compatibility import CompatibilityAnalyzer
from ferry.config import FerrySettings
from ferry.core.logging import correlation_scope
from ferry.errors import (
    AuthenticationError,
    ExtractionError,
    MigrationError,
    MigrationResumeError,
)
from ferry.events import EventDispatcher, EventListener
from ferry.models.bundle import ItemCounts, MigrationBundle, utc_now
from ferry.models.compatibility import CompatibilityReport
from ferry.models.migration import (
    Checkpoint,
    ExtractOptions,
    LoadedCounts,
    LoadOptions,
    LoadResult,
    MigrationEvent,
    MigrationEventType,
    MigrationOptions,
    MigrationPhase,
    MigrationState,
    ProgressCallback,
    TransformOptions,
)
from ferry.models.platforms import ContentType, OverflowStrategy, Platform
from ferry.persistence.state_store import MigrationStateStore
from ferry.protocols.plugins import Transformer
from ferry.registry import PluginRegistry

logger = logging.getLogger(__name__)

DRY_RUN_WARNING = "Dry run - no changes made"
EMPTY_BUNDLE_WARNING = "Nothing to load: the bundle is empty"


def new_migration_id() -> str:
    return f"mig_{uuid.uuid4().hex[:16]}"


def _with_defaults(options: MigrationOptions | None, settings: FerrySettings) -> MigrationOptions:
    defaults = settings.migration
    options = options.model_copy(deep=True) if options is not None else MigrationOptions()
    if options.include is None:
        options.include = defaults.include
    if options.exclude is None:
        options.exclude = defaults.exclude
    if options.max_items is None:
        options.max_items = defaults.max_items
    if options.overflow_strategy is None:
        options.overflow_strategy = defaults.overflow_strategy
    return options


class MigrationOrchestrator:
    def __init__(
        self,
        source: Platform | str,
        target: Platform | str,
        options: MigrationOptions | None = None,
        *,
        registry: PluginRegistry,
        work_root: Path | str | None = None,
        settings: FerrySettings | None = None,
        migration_id: str | None = None,
    ) -> None:
        self._settings = settings or FerrySettings()
        self._registry = registry
        self.id = migration_id or new_migration_id()
        self.work_root = Path(work_root) if work_root is not None else self._settings.work_root
        self.work_dir = self.work_root / self.id
        self._store = MigrationStateStore(self.work_dir)
        self._events = EventDispatcher(
            queue_size=self._settings.events.queue_size,
            flush_timeout_s=self._settings.events.flush_timeout_s,
        )
        self._state = MigrationState(
            id=self.id,
            source=Platform(source),
            target=Platform(target),
            options=_with_defaults(options, self._settings),
        )
        self._bundle: MigrationBundle | None = None
        self._source_bundle: MigrationBundle | None = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def source(self) -> Platform:
        return self._state.source

    @property
    def target(self) -> Platform:
        return self._state.target

    @property
    def options(self) -> MigrationOptions:
        return self._state.options

    @property
    def bundle(self) -> MigrationBundle | None:
        """The latest bundle: extracted, or transformed once that phase completed."""
        return self._bundle

    def get_state(self) -> MigrationState:
        return self._state.model_copy(deep=True)

    def on(self, listener: EventListener) -> Callable[[], None]:
        return self._events.subscribe(listener)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def run(self) -> LoadResult:
        """Run every remaining phase and return the load result."""
        if self._state.is_terminal:
            raise MigrationResumeError(
                f"Migration {self.id} is {self._state.phase.value} and cannot be run again"
            )
        transformer = self._registry.get_transformer(self.source, self.target)

        with correlation_scope(migration_id=self.id):
            await self._store.ensure_work_dir()
            if self._state.phase == MigrationPhase.pending:
                await self._store.save_state(self._state)

            completed = self._completed_phases()
            if MigrationPhase.extracting not in completed:
                await self._extract_phase()
            if MigrationPhase.transforming not in completed:
                await self._transform_phase(transformer)

            loading = self._checkpoint_for(MigrationPhase.loading)
            if loading is not None:
                result = await self._store.read_checkpoint(loading, LoadResult)
            else:
                result = await self._load_phase()

            await self._complete(result)
            return result

    async def continue_(self) -> LoadResult:
        """Continue a resumed migration from its last completed phase."""
        if self._state.is_terminal:
            raise MigrationResumeError(
                f"Migration {self.id} is {self._state.phase.value}; only interrupted migrations can continue"
            )
        last = self._state.last_checkpoint
        logger.info(
            "Continuing migration %s after %s",
            self.id,
            last.phase.value if last else "start",
        )
        return await self.run()

    async def extract(self) -> MigrationBundle:
        """Run the extraction phase only, reusing a completed extraction if there is one."""
        with correlation_scope(migration_id=self.id):
            return await self._ensure_source_bundle()

    async def analyze(self) -> CompatibilityReport:
        """Compatibility report for the extracted bundle; never touches the target."""
        with correlation_scope(migration_id=self.id):
            bundle = await self._ensure_source_bundle()
            if self._registry.has_transformer(self.source, self.target):
                transformer = self._registry.get_transformer(self.source, self.target)
                return await transformer.analyze(bundle)
            return await CompatibilityAnalyzer(self.source, self.target).analyze(bundle)

    async def cleanup(self) -> None:
        """Stop event delivery and remove temp files; persisted state is kept."""
        await self._events.close()
        await self._store.remove_temp_files()

    async def discard(self) -> None:
        """Delete everything this migration wrote, including resumable state."""
        await self.cleanup()
        await self._store.destroy()

    # ------------------------------------------------------------------
    # Resume / listing
    # ------------------------------------------------------------------

    @classmethod
    async def resume(
        cls,
        migration_id: str,
        *,
        registry: PluginRegistry,
        work_root: Path | str | None = None,
        settings: FerrySettings | None = None,
    ) -> MigrationOrchestrator:
        settings = settings or FerrySettings()
        root = Path(work_root) if work_root is not None else settings.work_root
        store = MigrationStateStore(root / migration_id)
        state = await store.load_state()

        if state.phase == MigrationPhase.failed:
            raise MigrationResumeError(
                f"Migration {migration_id} failed and cannot be resumed: {state.error}"
            )
        if state.phase == MigrationPhase.complete:
            raise MigrationResumeError(f"Migration {migration_id} is already complete")
        if not state.is_resumable:
            raise MigrationResumeError(
                f"Migration {migration_id} never started a phase; run it again instead of resuming"
            )

        orchestrator = cls(
            state.source,
            state.target,
            state.options,
            registry=registry,
            work_root=root,
            settings=settings,
            migration_id=state.id,
        )
        orchestrator._state = state

        extracted = orchestrator._checkpoint_for(MigrationPhase.extracting)
        if extracted is not None:
            orchestrator._source_bundle = await store.read_checkpoint(extracted, MigrationBundle)
            orchestrator._bundle = orchestrator._source_bundle
        transformed = orchestrator._checkpoint_for(MigrationPhase.transforming)
        if transformed is not None:
            orchestrator._bundle = await store.read_checkpoint(transformed, MigrationBundle)

        await store.remove_temp_files()
        logger.info("Resumed migration %s in phase %s", migration_id, state.phase.value)
        return orchestrator

    @staticmethod
    async def list_migrations(
        work_root: Path | str | None = None, settings: FerrySettings | None = None
    ) -> list[MigrationState]:
        root = Path(work_root) if work_root is not None else (settings or FerrySettings()).work_root
        return await MigrationStateStore.list_states(root)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _ensure_source_bundle(self) -> MigrationBundle:
        if self._source_bundle is not None:
            return self._source_bundle
        extracted = self._checkpoint_for(MigrationPhase.extracting)
        if extracted is not None:
            self._source_bundle = await self._store.read_checkpoint(extracted, MigrationBundle)
            return self._source_bundle
        if self._state.is_terminal:
            raise MigrationResumeError(f"Migration {self.id} is {self._state.phase.value}")
        await self._store.ensure_work_dir()
        return await self._extract_phase()

    async def _extract_phase(self) -> MigrationBundle:
        source_name = platform_name(self.source)
        async with self._phase(MigrationPhase.extracting):
            extractor = self._registry.get_extractor(self.source)
            if not await extractor.can_extract():
                raise AuthenticationError(f"Cannot extract from {source_name} - check authentication")

            try:
                bundle = await extractor.extract(
                    ExtractOptions(
                        work_dir=self.work_dir,
                        include=self.options.include,
                        max_items=self.options.max_items,
                        on_progress=self._progress_callback(),
                    )
                )
            except MigrationError:
                raise
            except Exception as exc:
                raise ExtractionError(f"Extraction from {source_name} failed: {exc}") from exc

            excluded = self._excluded_types()
            if excluded:
                bundle.contents = bundle.contents.without(excluded)
                bundle.recount()
            if bundle.source.bundle_path is None:
                bundle.source.bundle_path = str(self.work_dir)

            await self._store.save_bundle(bundle)
            await self._checkpoint(MigrationPhase.extracting, bundle)
            self._source_bundle = bundle
            self._bundle = bundle
            logger.info(
                "Extracted %d item(s) from %s",
                bundle.metadata.total_items,
                source_name,
            )
        return bundle

    async def _transform_phase(self, transformer: Transformer) -> MigrationBundle:
        async with self._phase(MigrationPhase.transforming):
            source_bundle = await self._ensure_source_bundle()
            bundle = await transformer.transform(
                source_bundle,
                TransformOptions(
                    overflow_strategy=self._overflow_strategy(),
                    on_progress=self._progress_callback(),
                ),
            )
            bundle.recount()
            await self._store.save_bundle(bundle)
            await self._checkpoint(MigrationPhase.transforming, bundle)
            self._bundle = bundle
        return bundle

    async def _load_phase(self) -> LoadResult:
        target_name = platform_name(self.target)
        async with self._phase(MigrationPhase.loading):
            bundle = self._bundle
            if bundle is None or bundle.target is None:
                transformed = self._checkpoint_for(MigrationPhase.transforming)
                if transformed is None:
                    raise MigrationResumeError(f"Migration {self.id} has no transformed bundle to load")
                bundle = await self._store.read_checkpoint(transformed, MigrationBundle)
                self._bundle = bundle

            if self.options.dry_run:
                result = _dry_run_result(bundle)
            elif bundle.is_empty():
                result = LoadResult(success=True, warnings=[EMPTY_BUNDLE_WARNING])
            else:
                loader = self._registry.get_loader(self.target)
                if not await loader.can_load(bundle):
                    raise AuthenticationError(f"Cannot load to {target_name} - check authentication")
                raw = await loader.load(
                    bundle,
                    LoadOptions(
                        dry_run=False,
                        project_name=self.options.project_name,
                        on_progress=self._progress_callback(),
                    ),
                )
                result = _aggregate_failures(raw, bundle)

            await self._store.save_load_result(result)
            await self._checkpoint(MigrationPhase.loading, result)
        return result

    async def _complete(self, result: LoadResult) -> None:
        self._state.phase = MigrationPhase.complete
        self._state.completed_at = utc_now()
        self._state.progress = 100.0
        await self._store.save_state(self._state)
        self._emit(
            MigrationEventType.complete,
            phase=MigrationPhase.complete,
            progress=100.0,
            message="Migration complete",
            data=result,
        )
        logger.info(
            "Migration %s complete (success=%s, %d warning(s), %d error(s), %d manual step(s))",
            self.id,
            result.success,
            len(result.warnings),
            len(result.errors),
            len(result.manual_steps),
        )
        for step in result.manual_steps:
            logger.info("Manual step required: %s", step)

    @asynccontextmanager
    async def _phase(self, phase: MigrationPhase) -> AsyncIterator[None]:
        self._state.phase = phase
        self._state.phase_started_at = utc_now()
        self._state.progress = 0.0
        self._state.error = None
        await self._store.save_state(self._state)
        self._emit(MigrationEventType.phase_start, phase=phase, progress=0.0, message=f"Starting {phase.value}")

        with correlation_scope(phase=phase.value):
            try:
                yield
            except asyncio.CancelledError:
                await self._store.save_state(self._state)
                logger.warning(
                    "Migration %s interrupted during %s; state saved for resume", self.id, phase.value
                )
                raise
            except Exception as exc:
                await self._fail(phase, exc)
                raise

        self._emit(
            MigrationEventType.phase_complete,
            phase=phase,
            progress=self._state.progress,
            message=f"Completed {phase.value}",
        )

    async def _fail(self, phase: MigrationPhase, exc: Exception) -> None:
        message = str(exc) or type(exc).__name__
        self._state.phase = MigrationPhase.failed
        self._state.error = message
        await self._store.save_state(self._state)
        logger.error("Migration %s failed during %s: %s", self.id, phase.value, message)
        self._emit(MigrationEventType.phase_error, phase=phase, message=message, error=exc)
        self._emit(MigrationEventType.error, phase=MigrationPhase.failed, message=message, error=exc)

    async def _checkpoint(self, phase: MigrationPhase, snapshot: MigrationBundle | LoadResult) -> Checkpoint:
        checkpoint = await self._store.write_checkpoint(phase, snapshot)
        self._state.checkpoints = [c for c in self._state.checkpoints if c.phase != phase]
        self._state.checkpoints.append(checkpoint)
        self._state.progress = 100.0
        await self._store.save_state(self._state)
        self._emit(
            MigrationEventType.checkpoint,
            phase=phase,
            progress=100.0,
            message=f"Checkpoint saved after {phase.value}",
        )
        return checkpoint

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _completed_phases(self) -> set[MigrationPhase]:
        return {c.phase for c in self._state.checkpoints}

    def _checkpoint_for(self, phase: MigrationPhase) -> Checkpoint | None:
        for checkpoint in reversed(self._state.checkpoints):
            if checkpoint.phase == phase:
                return checkpoint
        return None

    def _excluded_types(self) -> list[ContentType]:
        excluded = set(self.options.exclude or [])
        if self.options.include is not None:
            excluded |= set(ContentType) - set(self.options.include)
        return [ct for ct in ContentType if ct in excluded]

    def _overflow_strategy(self) -> OverflowStrategy:
        if self.options.overflow_strategy is not None:
            return self.options.overflow_strategy
        limit = get_target_limits(self.target)[ContentType.instructions]
        return limit.overflow_strategy if limit is not None else OverflowStrategy.truncate

    def _progress_callback(self) -> ProgressCallback:
        def _on_progress(fraction: float, message: str) -> None:
            percent = min(max(fraction * 100.0, 0.0), 100.0)
            self._state.progress = max(self._state.progress, percent)
            self._emit(
                MigrationEventType.progress,
                phase=self._state.phase,
                progress=self._state.progress,
                message=message,
            )

        return _on_progress

    def _emit(self, event_type: MigrationEventType, **fields: Any) -> None:
        self._events.emit(MigrationEvent(type=event_type, migration_id=self.id, **fields))


def _dry_run_result(bundle: MigrationBundle) -> LoadResult:
    counts = ItemCounts.from_contents(bundle.contents)
    return LoadResult(
        success=True,
        loaded=LoadedCounts(
            instructions=counts.instructions > 0,
            memories=counts.memories,
            files=counts.files,
            custom_bots=counts.custom_bots,
        ),
        warnings=[DRY_RUN_WARNING],
    )


def _aggregate_failures(result: LoadResult, bundle: MigrationBundle) -> LoadResult:
    """Surface every per-type failure as both a warning and an error."""
    if not result.failures:
        return result

    warnings = list(result.warnings)
    errors = list(result.errors)
    for failure in result.failures:
        message = failure.describe()
        if message not in warnings:
            warnings.append(message)
        if message not in errors:
            errors.append(message)
    success = result.success and (result.loaded.any() or bundle.is_empty())
    return result.model_copy(update={"warnings": warnings, "errors": errors, "success": success})


__all__ = [
    "DRY_RUN_WARNING",
    "EMPTY_BUNDLE_WARNING",
    "MigrationOrchestrator",
    "new_migration_id",
]
