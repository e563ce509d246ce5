import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from chat.exceptions import ModelRejectedError, ModelTimeoutError, ModelUnavailableError
from chat.gateways import ModelGateway
from chat.models import SamplingParams

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/completions")


def _client(result=None, error=None):
    client = MagicMock()
    client.completions.create = AsyncMock(return_value=result, side_effect=error)
    return client


def _completion(text="hi there", finish_reason="stop"):
    return SimpleNamespace(choices=[SimpleNamespace(text=text, finish_reason=finish_reason)])


def _status_error(status_code):
    response = httpx.Response(status_code, request=REQUEST, json={"error": {"message": "x"}})
    return openai.APIStatusError("status error", response=response, body=None)


def test_invoke_passes_sampling_parameters():
    client = _client(result=_completion())
    gateway = ModelGateway(client, model="test-model")

    text = asyncio.run(gateway.invoke("prompt", SamplingParams()))

    assert text == "hi there"
    client.completions.create.assert_awaited_once_with(
        model="test-model",
        prompt="prompt",
        max_tokens=500,
        temperature=0.5,
        top_p=1.0,
        extra_body={"top_k": 250},
    )


@pytest.mark.parametrize(
    "error, expected",
    [
        (openai.APITimeoutError(request=REQUEST), ModelTimeoutError),
        (openai.APIConnectionError(request=REQUEST), ModelUnavailableError),
        (_status_error(429), ModelUnavailableError),
        (_status_error(503), ModelUnavailableError),
        (_status_error(400), ModelRejectedError),
    ],
)
def test_errors_are_classified(error, expected):
    gateway = ModelGateway(_client(error=error), model="test-model")
    with pytest.raises(expected):
        asyncio.run(gateway.invoke("prompt", SamplingParams()))


def test_content_filter_is_rejected():
    gateway = ModelGateway(_client(result=_completion("", "content_filter")), model="m")
    with pytest.raises(ModelRejectedError):
        asyncio.run(gateway.invoke("prompt", SamplingParams()))


def test_empty_choices_are_rejected():
    gateway = ModelGateway(_client(result=SimpleNamespace(choices=[])), model="m")
    with pytest.raises(ModelRejectedError):
        asyncio.run(gateway.invoke("prompt", SamplingParams()))
