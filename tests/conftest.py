"""Shared fixtures and in-memory fakes for the chat pipeline tests."""
import asyncio
from typing import Any, Dict, List, Optional

import pytest

from chat.exceptions import HistoryStoreError
from chat.gateways import HistoryGateway, TemplateGateway
from chat.models import ChatRequest, PromptTemplate, SamplingParams
from chat.prompts import DEFAULT_TEMPLATE_TEXT
from chat.retry import JitterStrategy, RetryPolicy


class FakePipeline:
    """Buffers commands and applies them to the owning FakeRedis on execute."""

    def __init__(self, redis: "FakeRedis"):
        self.redis = redis
        self.commands: List[tuple] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def delete(self, key):
        self.commands.append(("delete", key))
        return self

    def hset(self, key, mapping=None):
        self.commands.append(("hset", key, mapping))
        return self

    def expireat(self, key, when):
        self.commands.append(("expireat", key, when))
        return self

    async def execute(self):
        if self.redis.fail_on_write is not None:
            raise self.redis.fail_on_write
        results = []
        for name, *args in self.commands:
            results.append(await getattr(self.redis, name)(*args))
        self.commands = []
        return results


class FakeRedis:
    """Minimal async Redis hash store."""

    def __init__(self):
        self.hashes: Dict[str, Dict[str, str]] = {}
        self.expirations: Dict[str, int] = {}
        self.fail_on_read: Optional[Exception] = None
        self.fail_on_write: Optional[Exception] = None

    async def hgetall(self, key):
        if self.fail_on_read is not None:
            raise self.fail_on_read
        return dict(self.hashes.get(key, {}))

    async def hset(self, key, mapping=None):
        if self.fail_on_write is not None:
            raise self.fail_on_write
        self.hashes.setdefault(key, {}).update({k: str(v) for k, v in mapping.items()})
        return len(mapping)

    async def exists(self, key):
        return 1 if key in self.hashes else 0

    async def delete(self, key):
        self.expirations.pop(key, None)
        return 1 if self.hashes.pop(key, None) is not None else 0

    async def expireat(self, key, when):
        self.expirations[key] = int(when)
        return True

    def pipeline(self, transaction=True):
        return FakePipeline(self)


class RecordingReplyGateway:
    """Reply gateway double that fails with the queued errors, then succeeds."""

    def __init__(self, errors=None):
        self.errors = list(errors or [])
        self.sent: List[tuple] = []
        self.calls = 0

    async def send(self, reply_token: str, text: str) -> None:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        self.sent.append((reply_token, text))


class StaticModelGateway:
    def __init__(self, completion: str = "hi there", error: Optional[Exception] = None, delay: float = 0.0):
        self.completion = completion
        self.error = error
        self.delay = delay
        self.prompts: List[str] = []

    async def invoke(self, prompt: str, sampling: SamplingParams) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.completion


class FailingHistoryGateway(HistoryGateway):
    def __init__(self, client: Any, fail_load: bool = False, fail_save: bool = False):
        super().__init__(client, key_prefix="test:history")
        self.fail_load = fail_load
        self.fail_save = fail_save

    async def load(self, conversation_key):
        if self.fail_load:
            raise HistoryStoreError("history store down")
        return await super().load(conversation_key)

    async def save(self, conversation_key, history_text, expires_at_epoch_seconds):
        if self.fail_save:
            raise HistoryStoreError("history store down")
        return await super().save(conversation_key, history_text, expires_at_epoch_seconds)


TEMPLATE_NAME = "prompt-template"


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def history_gateway(fake_redis):
    return HistoryGateway(fake_redis, key_prefix="test:history")


@pytest.fixture
def template_gateway(fake_redis):
    gateway = TemplateGateway(fake_redis, key_prefix="test:template")
    asyncio.run(
        gateway.save(PromptTemplate(name=TEMPLATE_NAME, text=DEFAULT_TEMPLATE_TEXT))
    )
    return gateway


@pytest.fixture
def sampling():
    return SamplingParams()


@pytest.fixture
def retry_policy():
    return RetryPolicy(max_attempts=3, base_delay=1.0, multiplier=2.0, jitter=JitterStrategy.FULL)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    return _sleep


def make_request(**overrides) -> ChatRequest:
    data = dict(
        message_id="m-1",
        conversation_key="abc",
        user_id="U1",
        reply_token="reply-token-1",
        message_text="hello",
        received_at_epoch_seconds=1000,
        timestamp=1000000,
    )
    data.update(overrides)
    return ChatRequest(**data)
