"""Infrastructure resources: Redis, HTTP client, model client.

This module is part of the infra layer and must not import from application features.
"""
from typing import Optional

import httpx
import redis.asyncio as redis_async
from openai import AsyncOpenAI


class RedisResource:
    """Redis resource for dependency injection."""

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self.client: Optional[redis_async.Redis] = None

    async def init(self):
        """Initialize Redis client."""
        self.client = redis_async.from_url(self.redis_url, decode_responses=True)
        return self

    async def connect(self):
        """Verify the connection with a PING."""
        await self.get_client().ping()

    def get_client(self) -> redis_async.Redis:
        if self.client is None:
            raise RuntimeError("Redis not initialized. Call init() first.")
        return self.client

    async def shutdown(self):
        """Close the client and its connection pool."""
        if self.client is not None:
            await self.client.aclose()
            self.client = None


class HttpClientResource:
    """Shared ``httpx.AsyncClient`` for outbound channel calls."""

    def __init__(self, timeout_seconds: float = 10.0):
        self.timeout_seconds = timeout_seconds
        self.client: Optional[httpx.AsyncClient] = None

    async def init(self):
        self.client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self

    def get_client(self) -> httpx.AsyncClient:
        if self.client is None:
            raise RuntimeError("HTTP client not initialized. Call init() first.")
        return self.client

    async def shutdown(self):
        if self.client is not None:
            await self.client.aclose()
            self.client = None


class ModelClientResource:
    """``AsyncOpenAI`` client; SDK-level retries are disabled."""

    def __init__(self, api_key: str, base_url: str, timeout_seconds: float = 30.0):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.client: Optional[AsyncOpenAI] = None

    async def init(self):
        self.client = AsyncOpenAI(
            api_key=self.api_key or "unset",
            base_url=self.base_url,
            timeout=self.timeout_seconds,
            max_retries=0,
        )
        return self

    def get_client(self) -> AsyncOpenAI:
        if self.client is None:
            raise RuntimeError("Model client not initialized. Call init() first.")
        return self.client

    async def shutdown(self):
        if self.client is not None:
            await self.client.close()
            self.client = None
