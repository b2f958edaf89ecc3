from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest
from ferry.errors import CheckpointCorruptedError, MigrationNotFoundError
from ferry.models.bundle import MigrationBundle, utc_now
from ferry.models.migration import LoadResult, MigrationPhase, MigrationState
from ferry.models.platforms import Platform
from ferry.persistence.state_store import CHECKPOINT_DIR, STATE_FILE, MigrationStateStore

from tests.helpers import make_bundle

pytestmark = pytest.mark.asyncio


def _state(migration_id: str = "mig_test", **updates) -> MigrationState:
    return MigrationState(id=migration_id, source=Platform.chatgpt, target=Platform.claude, **updates)


async def test_state_round_trip(tmp_path: Path) -> None:
    store = MigrationStateStore(tmp_path / "mig_test")
    state = _state(phase=MigrationPhase.transforming, progress=42.0)

    await store.save_state(state)
    loaded = await store.load_state()

    assert loaded == state
    assert (tmp_path / "mig_test" / STATE_FILE).exists()


async def test_missing_state_raises_not_found(tmp_path: Path) -> None:
    store = MigrationStateStore(tmp_path / "mig_absent")
    with pytest.raises(MigrationNotFoundError, match="mig_absent"):
        await store.load_state()


async def test_bundle_and_load_result_round_trip(tmp_path: Path) -> None:
    store = MigrationStateStore(tmp_path / "mig_test")
    assert await store.load_bundle() is None
    assert await store.load_load_result() is None

    bundle = make_bundle(memories=2)
    await store.save_bundle(bundle)
    await store.save_load_result(LoadResult(success=True, warnings=["w"]))

    assert (await store.load_bundle()) == bundle
    assert (await store.load_load_result()).warnings == ["w"]


async def test_writes_leave_no_temp_files(tmp_path: Path) -> None:
    work_dir = tmp_path / "mig_test"
    store = MigrationStateStore(work_dir)
    for progress in (10.0, 20.0, 30.0):
        await store.save_state(_state(progress=progress))
    await store.write_checkpoint(MigrationPhase.extracting, make_bundle())

    assert not list(work_dir.rglob("*.tmp"))


class TestCheckpoints:
    async def test_checkpoint_round_trip(self, tmp_path: Path) -> None:
        store = MigrationStateStore(tmp_path / "mig_test")
        bundle = make_bundle(memories=3)

        checkpoint = await store.write_checkpoint(MigrationPhase.extracting, bundle)

        assert checkpoint.phase == MigrationPhase.extracting
        assert checkpoint.snapshot_path == f"{CHECKPOINT_DIR}/extracting.json"
        assert len(checkpoint.checksum) == 64
        assert await store.read_checkpoint(checkpoint, MigrationBundle) == bundle

    async def test_tampered_snapshot_is_rejected(self, tmp_path: Path) -> None:
        work_dir = tmp_path / "mig_test"
        store = MigrationStateStore(work_dir)
        checkpoint = await store.write_checkpoint(MigrationPhase.extracting, make_bundle())

        path = work_dir / checkpoint.snapshot_path
        path.write_text(path.read_text(encoding="utf-8").replace("bundle-1", "bundle-2"), encoding="utf-8")

        with pytest.raises(CheckpointCorruptedError, match="checksum"):
            await store.read_checkpoint(checkpoint, MigrationBundle)

    async def test_missing_snapshot_is_rejected(self, tmp_path: Path) -> None:
        work_dir = tmp_path / "mig_test"
        store = MigrationStateStore(work_dir)
        checkpoint = await store.write_checkpoint(MigrationPhase.loading, LoadResult(success=True))
        (work_dir / checkpoint.snapshot_path).unlink()

        with pytest.raises(CheckpointCorruptedError, match="missing"):
            await store.read_checkpoint(checkpoint, LoadResult)

    async def test_wrong_model_type_is_rejected(self, tmp_path: Path) -> None:
        store = MigrationStateStore(tmp_path / "mig_test")
        checkpoint = await store.write_checkpoint(MigrationPhase.loading, LoadResult(success=True))

        with pytest.raises(CheckpointCorruptedError, match="unreadable"):
            await store.read_checkpoint(checkpoint, MigrationBundle)


class TestHousekeeping:
    async def test_remove_temp_files(self, tmp_path: Path) -> None:
        work_dir = tmp_path / "mig_test"
        store = MigrationStateStore(work_dir)
        await store.save_state(_state())
        (work_dir / ".state.json.abc123.tmp").write_text("partial", encoding="utf-8")
        (work_dir / CHECKPOINT_DIR).mkdir()
        (work_dir / CHECKPOINT_DIR / ".extracting.json.x.tmp").write_text("partial", encoding="utf-8")

        assert await store.remove_temp_files() == 2
        assert not list(work_dir.rglob("*.tmp"))
        assert (work_dir / STATE_FILE).exists()

    async def test_remove_temp_files_without_work_dir(self, tmp_path: Path) -> None:
        assert await MigrationStateStore(tmp_path / "nothing").remove_temp_files() == 0

    async def test_destroy(self, tmp_path: Path) -> None:
        work_dir = tmp_path / "mig_test"
        store = MigrationStateStore(work_dir)
        await store.save_state(_state())
        await store.destroy()
        assert not work_dir.exists()

    async def test_list_states_newest_first_and_skips_garbage(self, tmp_path: Path) -> None:
        now = utc_now()
        for offset, migration_id in ((2, "mig_old"), (0, "mig_new"), (1, "mig_mid")):
            store = MigrationStateStore(tmp_path / migration_id)
            await store.save_state(_state(migration_id, started_at=now - timedelta(hours=offset)))
        broken = tmp_path / "mig_broken"
        broken.mkdir()
        (broken / STATE_FILE).write_text("{not json", encoding="utf-8")

        states = await MigrationStateStore.list_states(tmp_path)

        assert [s.id for s in states] == ["mig_new", "mig_mid", "mig_old"]

    async def test_list_states_missing_root(self, tmp_path: Path) -> None:
        assert await MigrationStateStore.list_states(tmp_path / "absent") == []
