"""Unit tests for purge and stale-upload reconciliation."""

import pytest

from src.application.dtos.staging import IntakeMetadata
from src.application.services.maintenance import StagingMaintenanceService
from src.domain.exceptions import RunAlreadyActiveError
from src.domain.models import StagingItem, StagingStatus


@pytest.fixture
def maintenance(ledger, assembler, run_state, upload_state, settings):
    return StagingMaintenanceService(
        ledger=ledger,
        assembler=assembler,
        run_state=run_state,
        upload_state=upload_state,
        settings=settings,
    )


async def _seed(document_db, status):
    item = StagingItem(
        blob_ref=f"{status.value}.mp4",
        filename="movie.mp4",
        content_type="video/mp4",
        status=status,
    )
    await document_db.insert("staging_items", item.model_dump(mode="json"))
    return item


class TestPurge:
    """Tests for StagingMaintenanceService.purge."""

    async def test_purge_clears_everything(
        self,
        maintenance,
        assembler,
        ledger,
        upload_state,
        document_db,
        make_stream,
        tmp_path,
    ):
        await ledger.create_from_stream(
            make_stream(b"data"), content_type="video/mp4", filename="a.mp4", size=4
        )
        await assembler.receive_chunk(
            "up-1",
            0,
            3,
            b"chunk",
            IntakeMetadata(filename="b.mp4", content_type="video/mp4"),
        )
        (tmp_path / "staging-publish-leftover.mp4").write_bytes(b"old")
        (tmp_path / "unrelated.txt").write_text("keep me")

        summary = await maintenance.purge()

        assert summary.sessions_discarded == 1
        assert summary.items_deleted == 1
        assert summary.temp_files_deleted == 1
        assert document_db.all("staging_items") == []
        assert upload_state.get_state().upload_id is None
        assert sorted(p.name for p in tmp_path.iterdir()) == ["unrelated.txt"]

    async def test_purge_runs_while_a_drain_is_idle_between_items(
        self, maintenance, run_state, document_db
    ):
        await _seed(document_db, StagingStatus.PENDING)
        run_state.try_start_run([])

        summary = await maintenance.purge()

        assert summary.items_deleted == 1
        assert summary.kept_item_id is None
        assert document_db.all("staging_items") == []

    async def test_purge_during_run_keeps_the_item_being_published(
        self, maintenance, run_state, upload_state, ledger, document_db, tmp_path
    ):
        in_flight = await _seed(document_db, StagingStatus.UPLOADING)
        other = await _seed(document_db, StagingStatus.PENDING)
        run_state.try_start_run([in_flight, other])
        run_state.update_progress(0, 0, in_flight.id)
        upload_state.start_writing("up-1")
        kept_copy = tmp_path / f"staging-publish-{in_flight.id}-abc.mp4"
        kept_copy.write_bytes(b"in flight")
        (tmp_path / f"staging-publish-{other.id}-def.mp4").write_bytes(b"old")
        (tmp_path / "staging-chunk-x.part").write_bytes(b"old")

        summary = await maintenance.purge()

        assert summary.kept_item_id == in_flight.id
        assert summary.items_deleted == 1
        assert summary.temp_files_deleted == 2
        assert await ledger.get(in_flight.id) is not None
        assert await ledger.get(other.id) is None
        assert [p.name for p in tmp_path.iterdir()] == [kept_copy.name]
        assert upload_state.get_state().upload_id is None

    async def test_list_temp_artifacts(self, maintenance, tmp_path):
        for name in ("staging-chunk-a.part", "staging-upload-b.mp4", "other.bin"):
            (tmp_path / name).write_bytes(b"x")

        artifacts = await maintenance.list_temp_artifacts()

        assert [p.name for p in artifacts] == [
            "staging-chunk-a.part",
            "staging-upload-b.mp4",
        ]


class TestReconcile:
    """Tests for StagingMaintenanceService.reconcile."""

    async def test_reconcile_resets_uploading(self, maintenance, ledger, document_db):
        stuck = await _seed(document_db, StagingStatus.UPLOADING)
        done = await _seed(document_db, StagingStatus.READY)

        summary = await maintenance.reconcile()

        assert summary.reset_count == 1
        assert summary.target_status == StagingStatus.PENDING
        assert (await ledger.get(stuck.id)).status == StagingStatus.PENDING
        assert (await ledger.get(done.id)).status == StagingStatus.READY

    async def test_reconcile_refused_during_run(self, maintenance, run_state):
        run_state.try_start_run([])

        with pytest.raises(RunAlreadyActiveError):
            await maintenance.reconcile(StagingStatus.ERROR)
