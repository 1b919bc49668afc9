"""Result delivery to the external collection endpoint.

Delivery is fire-and-forget: ``submit`` hands the POST to a worker thread and
returns immediately, and the caller learns the outcome through a callback.
At most one attempt is made per call; nothing is retried or deduplicated.
"""
import json
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional
import httpx
from bopomofo.constants import (
    RESULT_TYPE,
    RESULT_MODE,
    RESULT_CONTENT_TYPE,
    REPORTER_MAX_WORKERS,
)

logger = logging.getLogger(__name__)


class DeliveryStatus(str, Enum):
    """Observable status of a result delivery."""
    SENDING = "sending"
    DELIVERED = "delivered"
    FAILED = "failed"
    SKIPPED = "skipped"


def build_result_payload(
    device_id: str,
    student_id: str,
    student_name: str,
    required_questions: int,
    required_accuracy: int,
    enabled_symbols: List[str],
    summary: dict,
    timestamp: Optional[datetime] = None
) -> dict:
    """
    Assemble the checkpoint result document.

    Args:
        device_id: Stable device identifier
        student_id: Student seat number / code
        student_name: Optional student name
        required_questions: Attempts threshold in effect
        required_accuracy: Accuracy threshold in effect
        enabled_symbols: The levels of the cleared session
        summary: ``{"totalLevels": n, "clearedLevels": n}``
        timestamp: Completion time (default: now, UTC)

    Returns:
        Payload dict ready for JSON serialization
    """
    timestamp = timestamp or datetime.now(timezone.utc)
    return {
        "type": RESULT_TYPE,
        "timestamp": timestamp.isoformat().replace("+00:00", "Z"),
        "deviceId": device_id,
        "student": {"studentId": student_id, "studentName": student_name},
        "settings": {
            "requiredQuestions": required_questions,
            "requiredAccuracy": required_accuracy,
            "enabledSymbols": list(enabled_symbols),
            "mode": RESULT_MODE,
        },
        "summary": summary,
    }


class ResultReporter:
    """
    Posts result payloads on a background thread pool.

    Args:
        endpoint: Collection URL; empty means every delivery is skipped
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``)
        max_workers: Worker threads for in-flight deliveries
    """

    def __init__(
        self,
        endpoint: str,
        transport: Optional[httpx.BaseTransport] = None,
        max_workers: int = REPORTER_MAX_WORKERS
    ):
        self.endpoint = endpoint
        self.transport = transport
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="result-reporter")

    def deliver(self, payload: dict) -> DeliveryStatus:
        """POST one payload and classify the outcome. Blocks; never raises for network errors."""
        if not self.endpoint:
            logger.info("Result endpoint not configured; delivery skipped")
            return DeliveryStatus.SKIPPED

        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")

        try:
            with httpx.Client(transport=self.transport) as client:
                response = client.post(
                    self.endpoint,
                    content=body,
                    headers={"Content-Type": RESULT_CONTENT_TYPE},
                )
        except httpx.HTTPError as e:
            logger.error(
                f"Result delivery failed: {e}",
                extra={"device_id": payload.get("deviceId")}
            )
            return DeliveryStatus.FAILED

        if response.is_success:
            logger.info(
                f"Result delivered: HTTP {response.status_code}",
                extra={"device_id": payload.get("deviceId")}
            )
            return DeliveryStatus.DELIVERED

        logger.error(
            f"Result delivery rejected: HTTP {response.status_code}",
            extra={"device_id": payload.get("deviceId")}
        )
        return DeliveryStatus.FAILED

    def submit(
        self,
        payload: dict,
        on_done: Optional[Callable[[DeliveryStatus], None]] = None
    ) -> "Future[DeliveryStatus]":
        """
        Dispatch a delivery without waiting for it.

        A skipped delivery completes synchronously so its status is visible at
        once. ``on_done`` runs on the worker thread otherwise.
        """
        if not self.endpoint:
            future: "Future[DeliveryStatus]" = Future()
            future.set_result(self.deliver(payload))
        else:
            future = self._executor.submit(self.deliver, payload)

        if on_done is not None:
            future.add_done_callback(lambda f: on_done(_status_of(f)))

        return future

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait)


def _status_of(future: "Future[DeliveryStatus]") -> DeliveryStatus:
    if future.cancelled():
        return DeliveryStatus.FAILED
    if future.exception() is not None:
        logger.error(f"Result delivery crashed: {future.exception()}")
        return DeliveryStatus.FAILED
    return future.result()