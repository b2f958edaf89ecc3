"""File-backed persistence for one migration's work directory.

Layout::

    <work_root>/<migration id>/
        state.json              MigrationState
        bundle.json             latest MigrationBundle
        checkpoints/<phase>.json snapshot written when a phase completes
        load_result.json        terminal LoadResult

Every write goes to a temporary file in the target directory and is moved
into place with ``os.replace``, so readers only ever see a complete file.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from ferry.errors import CheckpointCorruptedError, MigrationNotFoundError
from ferry.models.bundle import MigrationBundle, utc_now
from ferry.models.migration import Checkpoint, LoadResult, MigrationPhase, MigrationState

logger = logging.getLogger(__name__)

STATE_FILE = "state.json"
BUNDLE_FILE = "bundle.json"
LOAD_RESULT_FILE = "load_result.json"
CHECKPOINT_DIR = "checkpoints"
TEMP_SUFFIX = ".tmp"

ModelT = TypeVar("ModelT", bound=BaseModel)


def _atomic_write(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=TEMP_SUFFIX, dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _checksum(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class MigrationStateStore:
    def __init__(self, work_dir: Path) -> None:
        self.work_dir = Path(work_dir)

    @property
    def state_path(self) -> Path:
        return self.work_dir / STATE_FILE

    @property
    def bundle_path(self) -> Path:
        return self.work_dir / BUNDLE_FILE

    @property
    def load_result_path(self) -> Path:
        return self.work_dir / LOAD_RESULT_FILE

    async def ensure_work_dir(self) -> None:
        await asyncio.to_thread(self.work_dir.mkdir, parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Generic model I/O
    # ------------------------------------------------------------------

    async def _write_model(self, path: Path, model: BaseModel) -> bytes:
        data = model.model_dump_json(indent=2).encode("utf-8")
        await asyncio.to_thread(_atomic_write, path, data)
        return data

    async def _read_model(self, path: Path, model_type: type[ModelT]) -> ModelT | None:
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return None
        return model_type.model_validate_json(data)

    # ------------------------------------------------------------------
    # State, bundle, load result
    # ------------------------------------------------------------------

    async def save_state(self, state: MigrationState) -> None:
        await self._write_model(self.state_path, state)

    async def load_state(self) -> MigrationState:
        state = await self._read_model(self.state_path, MigrationState)
        if state is None:
            raise MigrationNotFoundError(f"Migration not found: {self.work_dir.name}")
        return state

    async def save_bundle(self, bundle: MigrationBundle) -> None:
        await self._write_model(self.bundle_path, bundle)

    async def load_bundle(self) -> MigrationBundle | None:
        return await self._read_model(self.bundle_path, MigrationBundle)

    async def save_load_result(self, result: LoadResult) -> None:
        await self._write_model(self.load_result_path, result)

    async def load_load_result(self) -> LoadResult | None:
        return await self._read_model(self.load_result_path, LoadResult)

    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------

    async def write_checkpoint(self, phase: MigrationPhase, snapshot: BaseModel) -> Checkpoint:
        """Persist ``snapshot`` for a completed phase and return its checkpoint record."""
        relative = Path(CHECKPOINT_DIR) / f"{phase.value}.json"
        data = await self._write_model(self.work_dir / relative, snapshot)
        return Checkpoint(
            phase=phase,
            timestamp=utc_now(),
            snapshot_path=relative.as_posix(),
            checksum=_checksum(data),
        )

    async def read_checkpoint(self, checkpoint: Checkpoint, model_type: type[ModelT]) -> ModelT:
        path = self.work_dir / checkpoint.snapshot_path
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as exc:
            raise CheckpointCorruptedError(
                f"Checkpoint snapshot missing for phase {checkpoint.phase.value}: {path}"
            ) from exc

        if _checksum(data) != checkpoint.checksum:
            raise CheckpointCorruptedError(
                f"Checkpoint snapshot for phase {checkpoint.phase.value} does not match its checksum"
            )
        try:
            return model_type.model_validate_json(data)
        except ValidationError as exc:
            raise CheckpointCorruptedError(
                f"Checkpoint snapshot for phase {checkpoint.phase.value} is unreadable"
            ) from exc

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    async def remove_temp_files(self) -> int:
        """Delete temp files left behind by interrupted writes."""

        def _sweep() -> int:
            if not self.work_dir.exists():
                return 0
            removed = 0
            for path in self.work_dir.rglob(f".*{TEMP_SUFFIX}"):
                path.unlink(missing_ok=True)
                removed += 1
            return removed

        removed = await asyncio.to_thread(_sweep)
        if removed:
            logger.debug("Removed %d stale temp file(s) from %s", removed, self.work_dir)
        return removed

    async def destroy(self) -> None:
        await asyncio.to_thread(shutil.rmtree, self.work_dir, ignore_errors=True)

    @staticmethod
    async def list_states(work_root: Path) -> list[MigrationState]:
        """Every readable migration state under ``work_root``, newest first."""

        def _scan() -> list[MigrationState]:
            root = Path(work_root)
            if not root.is_dir():
                return []
            states: list[MigrationState] = []
            for state_path in sorted(root.glob(f"*/{STATE_FILE}")):
                try:
                    states.append(MigrationState.model_validate_json(state_path.read_bytes()))
                except (OSError, ValidationError):
                    logger.warning("Skipping unreadable migration state: %s", state_path, exc_info=True)
            return states

        states = await asyncio.to_thread(_scan)
        states.sort(key=lambda s: s.started_at, reverse=True)
        return states


__all__ = [
    "BUNDLE_FILE",
    "CHECKPOINT_DIR",
    "LOAD_RESULT_FILE",
    "MigrationStateStore",
    "STATE_FILE",
]
