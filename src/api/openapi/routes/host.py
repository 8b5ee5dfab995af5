"""Video host account endpoints."""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.api.dependencies import SettingsDep, VideoHostDep, require_operator
from src.domain.models import QuotaInfo
from src.infrastructure.video_host import normalize_quota

router = APIRouter(dependencies=[Depends(require_operator)])


class AccountInfoResponse(BaseModel):
    """Host account payload with its normalized quota."""

    account: dict[str, Any] = Field(description="Account info as sent by the host")
    quota: QuotaInfo = Field(description="Quota read from the account info")


@router.get(
    "/host/account-info",
    response_model=AccountInfoResponse,
    summary="Host account info",
    description="Fetch the video host account and its storage and upload quota.",
)
async def get_account_info(
    host: VideoHostDep,
    settings: SettingsDep,
) -> AccountInfoResponse:
    """Return the raw account info and the quota derived from it."""
    account = await host.get_account_info()
    return AccountInfoResponse(
        account=account,
        quota=normalize_quota(account, settings.video_host.quota_fields),
    )
