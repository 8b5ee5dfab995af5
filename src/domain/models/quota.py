"""Normalized quota information reported by the video host."""

from pydantic import BaseModel, Field

from src.domain.models.staging import StagingStatus


class QuotaInfo(BaseModel):
    """Account quota in a fixed shape, whatever the host returned.

    Limits of 0 mean "unlimited"; ``max_uploads`` of None means no ceiling.
    """

    storage_used: int = Field(default=0, ge=0)
    storage_limit: int = Field(default=0, ge=0)
    daily_used: int = Field(default=0, ge=0)
    daily_limit: int = Field(default=0, ge=0)
    max_uploads: int | None = Field(default=None, ge=0)
    uploads_count: int = Field(default=0, ge=0)

    def exhaustion_for(self, size: int) -> StagingStatus | None:
        """Return the quota failure status an upload of ``size`` bytes hits.

        Storage is checked first, then the daily allowance, then the upload
        count ceiling. Returns None when the upload fits.
        """
        if self.storage_limit > 0 and self.storage_used + size > self.storage_limit:
            return StagingStatus.STORAGE_FAIL
        if self.daily_limit > 0 and self.daily_used >= self.daily_limit:
            return StagingStatus.DAILY_FAIL
        if self.max_uploads is not None and self.uploads_count >= self.max_uploads:
            return StagingStatus.MAX_UPLOAD_FAIL
        return None
