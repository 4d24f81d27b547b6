from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import httpx
import openai
import pytest

from api.openai_vision import (
  OpenAIVisionClient,
  QuotaExceededError,
  VisionServiceError,
  build_openai_client,
)
from tests.helpers import completion, openai_status_error


@pytest.fixture
def handle():
  return MagicMock()


def test_complete_returns_first_choice_text(handle):
  handle.chat.completions.create.return_value = completion('{"ok": true}')
  client = OpenAIVisionClient(handle, model="gpt-4o-mini", max_tokens=800, temperature=0.1)

  assert client.complete("describe", "data:image/png;base64,AAA") == '{"ok": true}'

  handle.chat.completions.create.assert_called_once_with(
    model="gpt-4o-mini",
    messages=[
      {
        "role": "user",
        "content": [
          {"type": "text", "text": "describe"},
          {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAA"}},
        ],
      }
    ],
    max_tokens=800,
    temperature=0.1,
  )


@pytest.mark.parametrize(
  "response",
  [
    SimpleNamespace(choices=[]),
    SimpleNamespace(choices=None),
    SimpleNamespace(choices=[SimpleNamespace(message=None)]),
    completion(None),
    completion(""),
  ],
)
def test_complete_returns_none_without_text(handle, response):
  handle.chat.completions.create.return_value = response
  assert OpenAIVisionClient(handle).complete("p", "u") is None


def test_quota_error_is_distinguished(handle):
  handle.chat.completions.create.side_effect = openai_status_error(
    openai.RateLimitError, 429, "insufficient_quota", "quota"
  )

  with pytest.raises(QuotaExceededError) as excinfo:
    OpenAIVisionClient(handle).complete("p", "u")
  assert isinstance(excinfo.value.__cause__, openai.RateLimitError)


@pytest.mark.parametrize(
  "error",
  [
    openai_status_error(openai.AuthenticationError, 401, "invalid_api_key", "Incorrect API key provided"),
    openai_status_error(openai.InternalServerError, 503, "server_error", "Service Unavailable"),
  ],
)
def test_other_sdk_errors_keep_their_message(handle, error):
  handle.chat.completions.create.side_effect = error

  with pytest.raises(VisionServiceError) as excinfo:
    OpenAIVisionClient(handle).complete("p", "u")
  assert not isinstance(excinfo.value, QuotaExceededError)
  assert str(excinfo.value) == str(error)


def test_connection_error_is_wrapped(handle):
  request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
  handle.chat.completions.create.side_effect = openai.APIConnectionError(request=request)

  with pytest.raises(VisionServiceError, match="Connection error"):
    OpenAIVisionClient(handle).complete("p", "u")


def test_build_openai_client_requires_key():
  with pytest.raises(VisionServiceError):
    build_openai_client("")


def test_build_openai_client_passes_settings():
  with patch("api.openai_vision.OpenAI") as sdk:
    build_openai_client("sk-test", timeout=12.5)
  sdk.assert_called_once_with(api_key="sk-test", timeout=12.5)
