"""
Client helpers for invoking the hosted vision model used for meal analysis.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from openai import OpenAI, OpenAIError

logger = logging.getLogger(__name__)

QUOTA_ERROR_CODE = "insufficient_quota"


class VisionServiceError(RuntimeError):
  """Raised when the vision model API returns an error."""


class QuotaExceededError(VisionServiceError):
  """Raised when the API key has run out of quota."""


def build_openai_client(api_key: str, *, timeout: float = 60.0) -> OpenAI:
  """Create the SDK handle shared by every request of the process."""
  if not api_key:
    raise VisionServiceError("OpenAI API key is not configured.")
  return OpenAI(api_key=api_key, timeout=timeout)


class OpenAIVisionClient:
  """
  Send a prompt plus one image to a chat completion model.

  The wrapped ``client`` is any object exposing
  ``chat.completions.create`` with the OpenAI SDK signature, which lets
  tests substitute a mock for the real handle.
  """

  def __init__(
    self,
    client: Any,
    *,
    model: str = "gpt-4o",
    max_tokens: int = 1500,
    temperature: float = 0.3,
  ) -> None:
    self._client = client
    self.model = model
    self.max_tokens = max_tokens
    self.temperature = temperature

  def _build_messages(self, prompt: str, image_url: str) -> List[Dict[str, Any]]:
    return [
      {
        "role": "user",
        "content": [
          {"type": "text", "text": prompt},
          {"type": "image_url", "image_url": {"url": image_url}},
        ],
      }
    ]

  def complete(self, prompt: str, image_url: str) -> Optional[str]:
    """
    Return the text content of the first choice, or ``None`` when empty.

    Raises
    ------
    QuotaExceededError
        The provider reported ``insufficient_quota``.
    VisionServiceError
        Any other error raised by the OpenAI SDK.
    """
    logger.info("Requesting meal analysis from %s", self.model)
    try:
      response = self._client.chat.completions.create(
        model=self.model,
        messages=self._build_messages(prompt, image_url),
        max_tokens=self.max_tokens,
        temperature=self.temperature,
      )
    except OpenAIError as exc:
      if getattr(exc, "code", None) == QUOTA_ERROR_CODE:
        raise QuotaExceededError(str(exc)) from exc
      raise VisionServiceError(str(exc)) from exc

    choices = getattr(response, "choices", None) or []
    if not choices:
      return None
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None) if message is not None else None
    if not isinstance(content, str) or not content:
      return None
    return content


__all__ = [
  "OpenAIVisionClient",
  "VisionServiceError",
  "QuotaExceededError",
  "build_openai_client",
]
