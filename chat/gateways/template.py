"""Prompt templates stored in Redis so operators can edit them without a redeploy."""
from __future__ import annotations

from typing import Any

import structlog
from pydantic import ValidationError
from redis.exceptions import RedisError

from chat.exceptions import TemplateInvalidError, TemplateNotFoundError, TemplateStoreError
from chat.models import PromptTemplate

logger = structlog.get_logger(__name__)

TEXT_FIELD = "text"
PROSE_FIELD = "prose"


class TemplateGateway:
    def __init__(self, client: Any, key_prefix: str = "chat:template"):
        self.client = client
        self.key_prefix = key_prefix

    def _key(self, name: str) -> str:
        return f"{self.key_prefix}:{name}"

    async def load(self, name: str) -> PromptTemplate:
        """Read the current template. Never cached between executions."""
        try:
            data = await self.client.hgetall(self._key(name))
        except RedisError as e:
            raise TemplateStoreError(
                f"Failed to load template: {e}", {"name": name}
            ) from e

        if not data or TEXT_FIELD not in data:
            raise TemplateNotFoundError(name)

        try:
            return PromptTemplate(
                name=name, text=data[TEXT_FIELD], prose=data.get(PROSE_FIELD, "")
            )
        except ValidationError as e:
            raise TemplateInvalidError(
                f"Template '{name}' is invalid",
                {"name": name, "errors": [err["msg"] for err in e.errors()]},
            ) from e

    async def save(self, template: PromptTemplate) -> PromptTemplate:
        try:
            await self.client.hset(
                self._key(template.name),
                mapping={TEXT_FIELD: template.text, PROSE_FIELD: template.prose},
            )
        except RedisError as e:
            raise TemplateStoreError(
                f"Failed to save template: {e}", {"name": template.name}
            ) from e
        logger.info("template.saved", name=template.name)
        return template

    async def ensure_default(self, template: PromptTemplate) -> bool:
        """Store ``template`` unless one already exists. Returns True when written."""
        try:
            exists = await self.client.exists(self._key(template.name))
        except RedisError as e:
            raise TemplateStoreError(
                f"Failed to check template: {e}", {"name": template.name}
            ) from e
        if exists:
            return False
        await self.save(template)
        logger.info("template.seeded", name=template.name)
        return True
