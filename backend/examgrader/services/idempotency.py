"""
Idempotency ledger for side-effecting operations.

Records move in-progress -> completed. Only a completed record short-circuits
a repeat call; an in-progress record is not a lock, so two concurrent calls
with the same request id can both run.
"""

from datetime import datetime, timezone
from typing import Any, Optional, Tuple

from examgrader.config import logger
from examgrader.repository import GradingRepository, WriteBatch, OPERATIONS


def operation_key(operation: str, request_id: str) -> str:
    return f"{operation}:{request_id}"


class IdempotencyLedger:

    def __init__(self, repo: GradingRepository):
        self.repo = repo

    async def begin(self, operation: str, request_id: str) -> Tuple[bool, Optional[Any]]:
        """
        Returns (already_completed, stored_result). When not completed, marks the
        operation in-progress.
        """
        key = operation_key(operation, request_id)
        record = await self.repo.find_one(OPERATIONS, {"key": key})
        if record and record.get("status") == "completed":
            logger.info(f"♻️ Replaying completed operation {key}")
            return True, record.get("result")

        await self.repo.commit(WriteBatch().set(OPERATIONS, {"key": key}, {
            "operation": operation,
            "request_id": request_id,
            "status": "in-progress",
            "started_at": datetime.now(timezone.utc).isoformat(),
        }, upsert=True))
        return False, None

    async def complete(self, operation: str, request_id: str, result: Any) -> None:
        key = operation_key(operation, request_id)
        await self.repo.commit(WriteBatch().set(OPERATIONS, {"key": key}, {
            "status": "completed",
            "finished_at": datetime.now(timezone.utc).isoformat(),
            "result": result,
        }, upsert=True))
