from typing import Protocol

from sitecraft.platform.exceptions import QuotaExceededError


class QuotaPolicy(Protocol):
    def check(self, workspace_id: str) -> None:
        """Raise QuotaExceededError when the workspace may not start another analysis."""


class DailyAnalysisQuota:
    """Rolling 24h cap on analyses per workspace."""

    def __init__(self, status_store, daily_limit: int):
        self._store = status_store
        self.daily_limit = daily_limit

    def check(self, workspace_id: str) -> None:
        if self.daily_limit <= 0:
            return
        used = self._store.count_analyses_last_day(workspace_id)
        if used >= self.daily_limit:
            raise QuotaExceededError(
                f"Daily analysis limit of {self.daily_limit} reached",
                {"workspace_id": workspace_id, "used": used, "limit": self.daily_limit},
            )
