"""Idempotency registry and case-opening preview registry.

Both live in the shared TTL store. A reservation is one atomic
set-if-absent, so two concurrent requests with the same key can never both
see ``is_new``.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from casino.errors import DuplicateInProgress
from casino.models.schema_models import CaseDrawSchema
from casino.services.kv_store import MemoryStore, RedisStore
from casino.services.store_calls import bounded

KVStore = Union[MemoryStore, RedisStore]

_PENDING = json.dumps({"state": "pending"})


@dataclass(frozen=True)
class Reservation:
    is_new: bool
    cached_result: Optional[Dict[str, Any]] = None


class IdempotencyRegistry:
    def __init__(self, store: KVStore, ttl_seconds: float = 30, timeout: float = 5.0):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.timeout = timeout

    @staticmethod
    def key(operation: str, user_id: str, client_token: str) -> str:
        return f"{operation}:{user_id}:{client_token}"

    async def check_and_reserve(self, key: str) -> Reservation:
        """Reserve ``key`` or return what an earlier request produced.

        Raises:
            DuplicateInProgress: the key is reserved and not completed yet
            SettlementFailure: the store did not answer in time
        """
        reserved = await bounded(
            self.store.set_if_absent(key, _PENDING, self.ttl_seconds),
            self.timeout,
            "Idempotency reserve",
        )
        if reserved:
            return Reservation(is_new=True)

        raw = await bounded(self.store.get(key), self.timeout, "Idempotency lookup")
        if raw is None:
            # expired between the two calls; take it
            return await self.check_and_reserve(key)
        record = json.loads(raw)
        if record.get("state") != "done":
            logging.info(f"Duplicate request while in progress: {key}")
            raise DuplicateInProgress()
        logging.info(f"Replaying cached result for {key}")
        return Reservation(is_new=False, cached_result=record["result"])

    async def complete(self, key: str, result: Dict[str, Any]) -> None:
        payload = json.dumps({"state": "done", "result": result})
        await bounded(self.store.set(key, payload, self.ttl_seconds), self.timeout, "Idempotency complete")

    async def release(self, key: str) -> None:
        """Drop a reservation whose operation failed before committing."""
        await bounded(self.store.delete(key), self.timeout, "Idempotency release")


class PreviewRegistry:
    """Server-held previews that a later two-phase completion may replay once."""

    def __init__(self, store: KVStore, ttl_seconds: float = 300, timeout: float = 5.0):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.timeout = timeout

    @staticmethod
    def key(user_id: str, opening_id: str) -> str:
        return f"case_preview:{user_id}:{opening_id}"

    async def register(self, user_id: str, draw: CaseDrawSchema) -> None:
        await bounded(
            self.store.set(self.key(user_id, draw.opening_id), draw.model_dump_json(), self.ttl_seconds),
            self.timeout,
            "Preview register",
        )

    async def consume(self, user_id: str, opening_id: str) -> Optional[CaseDrawSchema]:
        raw = await bounded(
            self.store.get_and_delete(self.key(user_id, opening_id)),
            self.timeout,
            "Preview consume",
        )
        if raw is None:
            return None
        return CaseDrawSchema.model_validate_json(raw)
