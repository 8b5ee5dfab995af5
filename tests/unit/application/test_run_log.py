"""Unit tests for the capped operator run log."""

from src.domain.models import RunLogName


class TestRunLogService:
    """Tests for RunLogService."""

    async def test_append_and_recent(self, run_log):
        entry = await run_log.append(RunLogName.PUBLISH_RUN, ["started", "done"])

        entries = await run_log.recent()
        assert [e.id for e in entries] == [entry.id]
        assert entries[0].lines == ["started", "done"]

    async def test_empty_lines_are_not_stored(self, run_log, document_db):
        assert await run_log.append(RunLogName.PUBLISH_RUN, []) is None
        assert document_db.all("process_logs") == []

    async def test_trims_to_configured_size(self, run_log, document_db):
        """Only the newest entries are kept."""
        for i in range(8):
            await run_log.append(RunLogName.STAGING_UPLOAD, [f"line {i}"])

        entries = await run_log.recent(limit=50)
        assert len(document_db.all("process_logs")) == 5
        assert [e.lines[0] for e in entries] == [f"line {i}" for i in (7, 6, 5, 4, 3)]

    async def test_filter_by_name(self, run_log):
        await run_log.append(RunLogName.STAGING_UPLOAD, ["intake"])
        await run_log.append(RunLogName.PUBLISH_RUN, ["run"])

        entries = await run_log.recent(RunLogName.PUBLISH_RUN)
        assert [e.log_name for e in entries] == [RunLogName.PUBLISH_RUN]

    async def test_store_failure_is_not_raised(self, run_log, document_db):
        """A failing store never breaks the logged operation."""
        document_db.fail_inserts_for.add("process_logs")

        assert await run_log.append(RunLogName.PUBLISH_RUN, ["x"]) is None
