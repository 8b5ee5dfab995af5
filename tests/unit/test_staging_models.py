"""Unit tests for staging, published and quota models."""

import pytest

from src.domain.models import (
    PROCESSABLE_STATUSES,
    PublishedRecord,
    QuotaInfo,
    SlugReadiness,
    StagingItem,
    StagingStatus,
)


@pytest.fixture
def item():
    return StagingItem(
        blob_ref="abc.mp4",
        filename="movie.mp4",
        size=100,
        content_type="video/mp4",
    )


class TestStagingItem:
    """Tests for StagingItem."""

    def test_defaults(self, item):
        assert item.status == StagingStatus.PENDING
        assert item.error_message is None
        assert item.external_slug is None
        assert len(item.id) == 36

    def test_ids_are_unique(self):
        first = StagingItem(blob_ref="a", filename="a.mp4", content_type="video/mp4")
        second = StagingItem(blob_ref="b", filename="b.mp4", content_type="video/mp4")
        assert first.id != second.id

    @pytest.mark.parametrize("status", list(StagingStatus))
    def test_is_processable(self, item, status):
        changed = item.model_copy(update={"status": status})
        assert changed.is_processable == (status in PROCESSABLE_STATUSES)

    def test_writing_and_uploading_are_not_processable(self):
        assert StagingStatus.WRITING not in PROCESSABLE_STATUSES
        assert StagingStatus.UPLOADING not in PROCESSABLE_STATUSES

    def test_mark_failed_keeps_original(self, item):
        failed = item.mark_failed("No space", StagingStatus.STORAGE_FAIL)

        assert failed.status == StagingStatus.STORAGE_FAIL
        assert failed.error_message == "No space"
        assert item.status == StagingStatus.PENDING

    def test_transition_clears_error(self, item):
        failed = item.mark_failed("boom")
        retried = failed.transition_to(StagingStatus.UPLOADING)

        assert retried.status == StagingStatus.UPLOADING
        assert retried.error_message is None
        assert retried.updated_at >= failed.updated_at

    def test_size_cannot_be_negative(self):
        with pytest.raises(ValueError):
            StagingItem(
                blob_ref="a", filename="a.mp4", content_type="video/mp4", size=-1
            )


class TestPublishedRecord:
    """Tests for PublishedRecord."""

    def test_mark_ready(self):
        record = PublishedRecord(external_slug="s1", filename="a.mp4", size=1)
        ready = record.mark_ready()

        assert record.is_ready is False
        assert ready.is_ready is True
        assert ready.slug_readiness == SlugReadiness.READY
        assert ready.id == record.id


class TestQuotaInfo:
    """Tests for QuotaInfo.exhaustion_for."""

    def test_unlimited_by_default(self):
        assert QuotaInfo().exhaustion_for(10**12) is None

    def test_storage_checked_first(self):
        quota = QuotaInfo(
            storage_used=90,
            storage_limit=100,
            daily_used=5,
            daily_limit=5,
            max_uploads=1,
            uploads_count=1,
        )
        assert quota.exhaustion_for(20) == StagingStatus.STORAGE_FAIL

    def test_storage_fits_exactly(self):
        quota = QuotaInfo(storage_used=90, storage_limit=100)
        assert quota.exhaustion_for(10) is None

    def test_daily_allowance(self):
        quota = QuotaInfo(daily_used=5, daily_limit=5)
        assert quota.exhaustion_for(1) == StagingStatus.DAILY_FAIL

    def test_upload_count_ceiling(self):
        quota = QuotaInfo(max_uploads=3, uploads_count=3)
        assert quota.exhaustion_for(1) == StagingStatus.MAX_UPLOAD_FAIL

    def test_zero_max_uploads_blocks(self):
        """A ceiling of 0 is a real ceiling, unlike a limit of 0."""
        assert QuotaInfo(max_uploads=0).exhaustion_for(1) == (
            StagingStatus.MAX_UPLOAD_FAIL
        )
