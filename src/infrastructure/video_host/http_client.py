"""HTTP client for the external video host."""

import time
from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from uuid import uuid4

import aiofiles
import aiofiles.os
import httpx

from src.commons.infrastructure.blob.base import HealthStatus
from src.commons.infrastructure.documentdb.base import DocumentDBBase
from src.commons.settings.models import QuotaFieldMapping
from src.commons.telemetry import get_logger
from src.domain.exceptions import VideoHostError
from src.domain.models.published import SlugReadiness
from src.domain.models.quota import QuotaInfo
from src.infrastructure.video_host.base import UploadResult, VideoHostBase
from src.infrastructure.video_host.quota import normalize_quota

TOKEN_DOCUMENT_ID = "video_host_token"
UPLOAD_CHUNK_SIZE = 1024 * 1024


def _parse_expiry(value: Any) -> datetime | None:
    """Parse an expiry given as ISO text or epoch milliseconds."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return datetime.fromtimestamp(value / 1000, UTC)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


class HttpVideoHostClient(VideoHostBase):
    """Video host client over its REST API.

    API calls authenticate with a bearer token obtained by email/password
    login. The token is cached in the ``system`` collection so restarts and
    other processes reuse it until it expires. Uploads go to a separate
    upload endpoint keyed by the account's API key.

    Expected API format:
    POST /auth/login        -> {"data": {"token": "...", "expiresAt": "..."}}
    GET  /v1/about          -> account info with quota fields
    GET  /v1/files/{slug}   -> {"status": "ready" | ...}
    POST {upload_url}/{key} -> {"status": true, "slug": "..."}
    """

    def __init__(
        self,
        api_url: str,
        upload_url: str,
        api_key: str,
        email: str,
        password: str,
        document_db: DocumentDBBase,
        system_collection: str = "system",
        quota_fields: QuotaFieldMapping | None = None,
        timeout: float = 30.0,
        upload_timeout: float | None = None,
        token_ttl_seconds: int = 24 * 60 * 60,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the video host client.

        Args:
            api_url: Base URL of the host's REST API.
            upload_url: Base URL of the upload endpoint.
            api_key: Account API key appended to the upload URL.
            email: Login email.
            password: Login password.
            document_db: Store for the cached token.
            system_collection: Collection holding the token document.
            quota_fields: Candidate paths for quota normalization.
            timeout: Timeout for API calls in seconds.
            upload_timeout: Timeout for uploads; None waits indefinitely.
            token_ttl_seconds: Token lifetime when login omits an expiry.
            transport: Optional transport override (used by tests).
        """
        self._api_url = api_url.rstrip("/")
        self._upload_url = upload_url.rstrip("/")
        self._api_key = api_key
        self._email = email
        self._password = password
        self._document_db = document_db
        self._system_collection = system_collection
        self._quota_fields = quota_fields or QuotaFieldMapping()
        self._upload_timeout = upload_timeout
        self._token_ttl = timedelta(seconds=token_ttl_seconds)
        self._token: str | None = None
        self._token_expires_at: datetime | None = None
        self._logger = get_logger(__name__)

        self._client = httpx.AsyncClient(
            headers={"Accept": "application/json"},
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def _get_token(self) -> str:
        """Return a valid bearer token, logging in when the cache is stale."""
        now = datetime.now(UTC)
        if self._token and self._token_expires_at and self._token_expires_at > now:
            return self._token

        cached = await self._document_db.find_by_id(
            self._system_collection, TOKEN_DOCUMENT_ID
        )
        if cached and cached.get("token"):
            expires_at = cached.get("expires_at")
            if isinstance(expires_at, datetime):
                if expires_at.tzinfo is None:
                    expires_at = expires_at.replace(tzinfo=UTC)
                if expires_at > now:
                    self._token = str(cached["token"])
                    self._token_expires_at = expires_at
                    return self._token

        return await self._login()

    async def _login(self) -> str:
        if not self._email or not self._password:
            raise VideoHostError("login", "email and password must be configured")

        self._logger.info("Logging in to video host", extra={"api_url": self._api_url})
        try:
            response = await self._client.post(
                f"{self._api_url}/auth/login",
                json={"email": self._email, "password": self._password},
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise VideoHostError(
                "login", str(e), status_code=e.response.status_code
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise VideoHostError("login", str(e)) from e

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            data = payload if isinstance(payload, dict) else {}
        token = data.get("token") or data.get("accessToken") or data.get("access_token")
        if not token:
            raise VideoHostError("login", "response did not include a token")

        expires_at = _parse_expiry(
            data.get("expiresAt") or data.get("expires_at")
        ) or datetime.now(UTC) + self._token_ttl

        await self._document_db.upsert(
            self._system_collection,
            TOKEN_DOCUMENT_ID,
            {"token": token, "expires_at": expires_at},
        )
        self._token = str(token)
        self._token_expires_at = expires_at
        return self._token

    async def _get_json(self, operation: str, url: str) -> Any:
        token = await self._get_token()
        try:
            response = await self._client.get(
                url, headers={"Authorization": f"Bearer {token}"}
            )
            if response.status_code == 401:
                # Token revoked before its recorded expiry
                token = await self._login()
                response = await self._client.get(
                    url, headers={"Authorization": f"Bearer {token}"}
                )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise VideoHostError(
                operation, str(e), status_code=e.response.status_code
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise VideoHostError(operation, str(e)) from e

    async def get_account_info(self) -> dict[str, Any]:
        """Fetch account info from /v1/about."""
        payload = await self._get_json("account info", f"{self._api_url}/v1/about")
        if not isinstance(payload, dict):
            raise VideoHostError("account info", "unexpected response shape")
        return payload

    async def get_quota(self) -> QuotaInfo:
        """Fetch account info and normalize its quota fields."""
        return normalize_quota(await self.get_account_info(), self._quota_fields)

    async def _multipart_body(
        self,
        path: Path,
        boundary: str,
        filename: str,
        content_type: str,
    ) -> tuple[AsyncIterator[bytes], int]:
        """Build a single-file multipart body that reads the file lazily.

        Returns:
            The body iterator and its exact length in bytes.
        """
        quoted = filename.replace("\\", "\\\\").replace('"', "%22")
        head = (
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="file"; filename="{quoted}"\r\n'
            f"Content-Type: {content_type}\r\n\r\n"
        ).encode()
        tail = f"\r\n--{boundary}--\r\n".encode()
        file_size = (await aiofiles.os.stat(path)).st_size

        async def body() -> AsyncIterator[bytes]:
            yield head
            async with aiofiles.open(path, "rb") as fh:
                while chunk := await fh.read(UPLOAD_CHUNK_SIZE):
                    yield chunk
            yield tail

        return body(), len(head) + file_size + len(tail)

    async def upload(
        self,
        path: Path,
        filename: str,
        content_type: str,
        size: int,
    ) -> UploadResult:
        """Upload a local file as multipart form data.

        The file is streamed from disk in chunks with a known Content-Length.
        """
        url = f"{self._upload_url}/{self._api_key}"
        self._logger.info(
            "Uploading file to video host",
            extra={"filename": filename, "size_bytes": size},
        )
        boundary = uuid4().hex
        try:
            body, length = await self._multipart_body(
                path, boundary, filename or "video.mp4", content_type
            )
            response = await self._client.post(
                url,
                content=body,
                headers={
                    "Content-Type": f"multipart/form-data; boundary={boundary}",
                    "Content-Length": str(length),
                },
                timeout=httpx.Timeout(self._upload_timeout),
            )
        except httpx.HTTPError as e:
            raise VideoHostError("upload", str(e)) from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and body.get("status") is True and body.get("slug"):
            return UploadResult(slug=str(body["slug"]), raw=body)

        message = None
        if isinstance(body, dict):
            message = body.get("msg") or body.get("message")
        message = message or response.reason_phrase or "Upload failed"
        self._logger.error(
            "Video host upload failed",
            extra={
                "status_code": response.status_code,
                "reason": message,
                "filename": filename,
            },
        )
        raise VideoHostError("upload", str(message), status_code=response.status_code)

    async def get_slug_status(self, slug: str) -> SlugReadiness:
        """Map the host file status onto SlugReadiness."""
        payload = await self._get_json(
            "slug status", f"{self._api_url}/v1/files/{slug}"
        )
        if isinstance(payload, dict) and payload.get("status") == "ready":
            return SlugReadiness.READY
        return SlugReadiness.NOT_READY

    async def health_check(self) -> HealthStatus:
        """Check the API base URL answers."""
        start = time.perf_counter()
        try:
            response = await self._client.get(self._api_url)
        except httpx.HTTPError as e:
            latency_ms = (time.perf_counter() - start) * 1000
            return HealthStatus(
                healthy=False,
                latency_ms=latency_ms,
                message=f"Video host health check failed: {e}",
                details={"api_url": self._api_url, "error": str(e)},
            )
        latency_ms = (time.perf_counter() - start) * 1000
        healthy = response.status_code < 500
        return HealthStatus(
            healthy=healthy,
            latency_ms=latency_ms,
            message="Video host is reachable" if healthy else "Video host error",
            details={
                "api_url": self._api_url,
                "status_code": str(response.status_code),
            },
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
