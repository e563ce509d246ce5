"""Text-completion client for the generative model.

Uses the OpenAI-compatible completions endpoint. The client is built with
``max_retries=0``: generation is never retried by this service.
"""
from __future__ import annotations

import time

import structlog
from openai import (
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
)

from chat.exceptions import ModelRejectedError, ModelTimeoutError, ModelUnavailableError
from chat.models import SamplingParams

logger = structlog.get_logger(__name__)


class ModelGateway:
    def __init__(self, client: AsyncOpenAI, model: str):
        self.client = client
        self.model = model

    async def invoke(self, prompt: str, sampling: SamplingParams) -> str:
        """Return the completion text or raise a classified ModelInvocationError."""
        start = time.time()
        try:
            response = await self.client.completions.create(
                model=self.model,
                prompt=prompt,
                max_tokens=sampling.max_tokens,
                temperature=sampling.temperature,
                top_p=sampling.top_p,
                # top_k is not part of the OpenAI schema; compatible servers read it from the body
                extra_body={"top_k": sampling.top_k},
            )
        except APITimeoutError as e:
            raise ModelTimeoutError(f"Model request timed out: {e}", {"model": self.model}) from e
        except APIConnectionError as e:
            raise ModelUnavailableError(
                f"Model endpoint unreachable: {e}", {"model": self.model}
            ) from e
        except APIStatusError as e:
            details = {"model": self.model, "status_code": e.status_code}
            if e.status_code == 429 or e.status_code >= 500:
                raise ModelUnavailableError(f"Model unavailable: {e.message}", details) from e
            raise ModelRejectedError(f"Model rejected request: {e.message}", details) from e
        except APIError as e:
            raise ModelUnavailableError(f"Model error: {e}", {"model": self.model}) from e

        latency_ms = int((time.time() - start) * 1000)
        if not response.choices:
            raise ModelRejectedError("Model returned no choices", {"model": self.model})

        choice = response.choices[0]
        if choice.finish_reason == "content_filter":
            raise ModelRejectedError(
                "Completion blocked by content filter", {"model": self.model}
            )

        completion = choice.text or ""
        logger.info(
            "model.invoked",
            model=self.model,
            latency_ms=latency_ms,
            prompt_chars=len(prompt),
            completion_chars=len(completion),
            finish_reason=choice.finish_reason,
        )
        return completion
