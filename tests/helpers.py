"""Builders for OpenAI responses, SDK errors and sample analyses used across the suite."""

from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, Dict

import httpx

TEST_PASSWORD = "secret123"


def completion(content: Any) -> SimpleNamespace:
  """Build an object shaped like an OpenAI chat completion response."""
  return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def openai_status_error(cls, status: int, code: str, message: str):
  """Instantiate a real OpenAI SDK status error with the given error code."""
  request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
  response = httpx.Response(status, request=request)
  return cls(message, response=response, body={"code": code, "message": message})


def sample_analysis(**overrides: Any) -> Dict[str, Any]:
  analysis = {
    "ingredients": ["rice", "chicken"],
    "nutrition": {"calories": 500, "protein": "30g", "carbs": "50g", "fat": "10g", "fiber": "2g"},
    "allergens": [],
    "dietary_tags": ["gluten-free"],
    "healthScore": 7,
    "alternatives": ["grilled chicken"],
    "portion_analysis": "moderate",
    "confidence": 0.9,
  }
  analysis.update(overrides)
  return analysis


def analysis_reply(**overrides: Any) -> SimpleNamespace:
  return completion(json.dumps(sample_analysis(**overrides)))
