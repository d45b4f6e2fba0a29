import json
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import redis

from sitecraft.features.analysis.models import AnalysisStatus
from sitecraft.platform.logger import get_logger
from sitecraft.platform.utils.retry import RetryPolicy, run_with_retry

logger = get_logger(__name__)

ANALYSIS_COMPLETED = "analysis_completed"

DEFAULT_PUBLISH_RETRY = RetryPolicy(max_attempts=3, delay_seconds=0.2)


def event_channel(analysis_id: str) -> str:
    return f"analysis_events:{analysis_id}"


class RedisCompletionNotifier:
    """
    Publishes the one-time `analysis_completed` event for the report consumer.

    Connection and timeout errors are retried a few times; after that the
    event is dropped and logged, since the analysis row already holds the result.
    """

    def __init__(
        self,
        client: redis.Redis,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._client = client
        self._retry_policy = retry_policy or DEFAULT_PUBLISH_RETRY
        self._sleep = sleep

    @classmethod
    def from_url(
        cls, url: str, socket_timeout: float = 5.0, retry_policy: Optional[RetryPolicy] = None
    ) -> "RedisCompletionNotifier":
        client = redis.Redis.from_url(url, socket_timeout=socket_timeout, socket_connect_timeout=socket_timeout)
        return cls(client, retry_policy=retry_policy)

    def publish(self, analysis_id: str, event_type: str, data: Dict[str, Any]) -> bool:
        message = {
            "event_type": event_type,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "analysis_id": analysis_id,
            **data,
        }
        body = json.dumps(message, default=str)
        try:
            run_with_retry(
                lambda: self._client.publish(event_channel(analysis_id), body),
                self._retry_policy,
                retry_on=(redis.ConnectionError, redis.TimeoutError),
                description=f"[{analysis_id}] Publish of '{event_type}'",
                sleep=self._sleep,
            )
        except redis.RedisError as e:
            logger.error(f"[{analysis_id}] Failed to publish event '{event_type}': {e}")
            return False
        logger.info(f"[{analysis_id}] Published event: {event_type}")
        return True

    def analysis_finished(self, analysis_id: str, status: AnalysisStatus, summary: Dict[str, Any]) -> None:
        self.publish(analysis_id, ANALYSIS_COMPLETED, {**summary, "status": status.value})
