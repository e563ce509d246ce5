"""Conversation history stored as one Redis hash per conversation key."""
from __future__ import annotations

from typing import Any

import structlog
from redis.exceptions import RedisError

from chat.exceptions import HistoryStoreError
from chat.models import HistoryAbsent, HistoryLookup, HistoryPresent, HistoryRecord

logger = structlog.get_logger(__name__)

HISTORY_FIELD = "history"
EXPIRES_AT_FIELD = "expires_at"


class HistoryGateway:
    """Load and replace history records.

    ``save`` is last-write-wins; the record expires at the given epoch second.
    """

    def __init__(self, client: Any, key_prefix: str = "chat:history"):
        self.client = client
        self.key_prefix = key_prefix

    def _key(self, conversation_key: str) -> str:
        return f"{self.key_prefix}:{conversation_key}"

    async def load(self, conversation_key: str) -> HistoryLookup:
        try:
            data = await self.client.hgetall(self._key(conversation_key))
        except RedisError as e:
            raise HistoryStoreError(
                f"Failed to load history: {e}",
                {"conversation_key": conversation_key},
            ) from e

        if not data:
            logger.debug("history.absent", conversation_key=conversation_key)
            return HistoryAbsent(conversation_key=conversation_key)

        record = HistoryRecord(
            conversation_key=conversation_key,
            history_text=data.get(HISTORY_FIELD, ""),
            expires_at_epoch_seconds=int(data.get(EXPIRES_AT_FIELD, 0) or 0),
        )
        logger.debug(
            "history.loaded",
            conversation_key=conversation_key,
            history_chars=len(record.history_text),
        )
        return HistoryPresent(record=record)

    async def save(
        self, conversation_key: str, history_text: str, expires_at_epoch_seconds: int
    ) -> HistoryRecord:
        key = self._key(conversation_key)
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                pipe.hset(
                    key,
                    mapping={
                        HISTORY_FIELD: history_text,
                        EXPIRES_AT_FIELD: str(expires_at_epoch_seconds),
                    },
                )
                pipe.expireat(key, expires_at_epoch_seconds)
                await pipe.execute()
        except RedisError as e:
            raise HistoryStoreError(
                f"Failed to save history: {e}",
                {"conversation_key": conversation_key},
            ) from e

        logger.debug(
            "history.saved",
            conversation_key=conversation_key,
            history_chars=len(history_text),
            expires_at=expires_at_epoch_seconds,
        )
        return HistoryRecord(
            conversation_key=conversation_key,
            history_text=history_text,
            expires_at_epoch_seconds=expires_at_epoch_seconds,
        )
