"""
Meta Ads sync function client

Calls the meta-ads-sync function for one project and one date range. The
function fetches and upserts the daily metrics itself; this client only
reports whether it worked and how many daily rows it wrote.
"""
from dataclasses import dataclass
from datetime import date
from typing import Optional

import httpx

from adimport.config import get_settings
from adimport.utils.logger import log
from adimport.utils.retry import retry_sync, RETRYABLE_STATUS_CODES


class SyncPrimitiveError(Exception):
    """The sync function failed or could not be reached."""


class TransientSyncError(SyncPrimitiveError):
    """Throttled or 5xx response; safe to retry."""


@dataclass
class SyncPrimitiveResult:
    records_count: int = 0


class MetaAdsSyncClient:
    """HTTP client for the per-month ad data sync"""

    RETRY_MAX_ATTEMPTS = 3
    RETRY_BASE_DELAY = 2.0  # seconds

    def __init__(
        self,
        url: Optional[str] = None,
        service_key: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        settings = get_settings()
        self.url = url or settings.sync_function_url
        self.service_key = service_key or settings.sync_service_key
        self.access_token = access_token or settings.meta_access_token
        self.timeout = timeout or settings.sync_timeout_seconds
        self._http_client = http_client

    def sync_month(self, project_id: str, ad_account_id: str, since: date, until: date) -> SyncPrimitiveResult:
        """
        Sync one date range for one ad account.

        Raises:
            SyncPrimitiveError: non-2xx response, success=false, or network failure
                after retries. The message is the function's own error text when
                it returned one.
        """
        if not self.url:
            raise SyncPrimitiveError("Sync function URL is not configured")

        payload = {
            "project_id": project_id,
            "ad_account_id": ad_account_id,
            "time_range": {"since": since.isoformat(), "until": until.isoformat()},
            "since": since.isoformat(),
            "until": until.isoformat(),
            "skip_enrichment": True,  # thumbnails are not needed for history
        }
        if self.access_token:
            payload["access_token"] = self.access_token

        log.info(f"[SYNC] {project_id} {ad_account_id}: {payload['since']} to {payload['until']}")

        try:
            response = self._post(payload)
        except httpx.HTTPError as e:
            raise SyncPrimitiveError(f"Sync request failed: {e}") from e

        body = self._parse_body(response)
        if response.status_code >= 400 or not body.get("success"):
            raise SyncPrimitiveError(
                body.get("error") or f"Sync failed with status {response.status_code}"
            )

        data = body.get("data") or {}
        count = data.get("daily_records_count")
        if count is None:
            count = body.get("count", 0)
        return SyncPrimitiveResult(records_count=int(count or 0))

    @retry_sync(
        max_attempts=RETRY_MAX_ATTEMPTS,
        base_delay=RETRY_BASE_DELAY,
        retryable_exceptions=(httpx.TransportError, TransientSyncError),
    )
    def _post(self, payload: dict) -> httpx.Response:
        headers = {"Content-Type": "application/json"}
        if self.service_key:
            headers["Authorization"] = f"Bearer {self.service_key}"

        if self._http_client is not None:
            response = self._http_client.post(self.url, json=payload, headers=headers, timeout=self.timeout)
        else:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(self.url, json=payload, headers=headers)

        if response.status_code in RETRYABLE_STATUS_CODES:
            body = self._parse_body(response)
            raise TransientSyncError(
                body.get("error") or f"Sync failed with status {response.status_code}"
            )
        return response

    @staticmethod
    def _parse_body(response: httpx.Response) -> dict:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
