import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from chat.exceptions import HistoryStoreError
from chat.models import HistoryAbsent, HistoryPresent


def test_load_absent(history_gateway):
    lookup = asyncio.run(history_gateway.load("abc"))
    assert isinstance(lookup, HistoryAbsent)
    assert lookup.conversation_key == "abc"


def test_save_then_load(history_gateway, fake_redis):
    record = asyncio.run(history_gateway.save("abc", "transcript", 4600))

    lookup = asyncio.run(history_gateway.load("abc"))

    assert isinstance(lookup, HistoryPresent)
    assert lookup.record == record
    assert fake_redis.expirations["test:history:abc"] == 4600


def test_save_replaces_whole_record(history_gateway):
    asyncio.run(history_gateway.save("abc", "first", 100))
    asyncio.run(history_gateway.save("abc", "second", 200))

    record = asyncio.run(history_gateway.load("abc")).record

    assert record.history_text == "second"
    assert record.expires_at_epoch_seconds == 200


def test_load_error_is_classified(history_gateway, fake_redis):
    fake_redis.fail_on_read = RedisConnectionError("refused")
    with pytest.raises(HistoryStoreError) as exc_info:
        asyncio.run(history_gateway.load("abc"))
    assert exc_info.value.details == {"conversation_key": "abc"}


def test_save_error_is_classified(history_gateway, fake_redis):
    fake_redis.fail_on_write = RedisConnectionError("refused")
    with pytest.raises(HistoryStoreError):
        asyncio.run(history_gateway.save("abc", "x", 1))
