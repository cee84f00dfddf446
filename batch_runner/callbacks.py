"""
Completion callbacks

POSTs a short notification to the submitter's callback URL once an audit is
completed. Delivery is best effort: failures are logged and never fail the job.
"""
from typing import Any, Optional

import httpx

from core.config import get_settings
from core.logging import get_logger
from d3_assessment.schemas import AuditRecord, utcnow

logger = get_logger(__name__, domain="batch")

COMPLETED_EVENT = "audit.completed"


def build_callback_payload(record: AuditRecord) -> dict[str, Any]:
    return {
        "event": COMPLETED_EVENT,
        "job_id": record.job_id,
        "url": record.url,
        "score": record.compliance_score,
        "compliance_level": record.compliance_level,
        "total_issues": record.total_issues,
        "timestamp": utcnow().isoformat(),
    }


class CallbackNotifier:
    """Sends completion callbacks over a shared httpx client"""

    def __init__(self, timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout or float(get_settings().callback_timeout)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def notify(self, callback_url: str, record: AuditRecord) -> bool:
        """Returns True when the callback endpoint answered 2xx"""
        log = logger.with_context(job_id=record.job_id)
        try:
            response = await self._get_client().post(callback_url, json=build_callback_payload(record))
        except httpx.HTTPError as e:
            log.warning(f"Callback to {callback_url} failed: {e}")
            return False

        if not response.is_success:
            log.warning(f"Callback to {callback_url} returned {response.status_code}")
            return False

        log.info(f"Callback delivered to {callback_url}")
        return True

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
