"""
Meal analysis pipeline: prompt construction, tolerant parsing of the model
reply, shape validation and allergen annotation.

The model is asked for JSON but routinely wraps it in prose or markdown
fences, so the parser takes the span from the first ``{`` to the last ``}``
before decoding. Everything here works on plain dictionaries; the result is
built fresh for every request and never stored.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from api.image_payload import build_image_data_url

logger = logging.getLogger(__name__)

JSON_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")

ALLERGEN_ALERT_TEMPLATE = (
  "⚠️ ALLERGEN ALERT: This meal may contain {allergens} which you've marked as allergies."
)

ANALYSIS_PROMPT_TEMPLATE = """Analyze this food image and provide a comprehensive nutritional analysis. Return the response as a valid JSON object with the following structure:

{{
  "ingredients": ["ingredient1", "ingredient2"],
  "nutrition": {{
    "calories": number,
    "protein": "Xg",
    "carbs": "Xg",
    "fat": "Xg",
    "fiber": "Xg"
  }},
  "allergens": ["allergen1", "allergen2"],
  "dietary_tags": ["vegetarian", "gluten-free"],
  "healthScore": number (1-10),
  "alternatives": ["suggestion1", "suggestion2"],
  "portion_analysis": "description of portion size",
  "confidence": number (0.0-1.0),
  "warnings": ["warning1", "warning2"],
  "delivery_recommendation": "how well this meal travels and how to order or pack it",
  "delivery_options": [
    {{"platform": "name", "eta_minutes": number, "cost_estimate": "$X-Y"}}
  ]
}}

User preferences: {preferences}

Please provide accurate nutritional estimates and helpful health insights. If you cannot clearly identify the food, indicate this in the confidence score and warnings."""


class MealAnalysisError(RuntimeError):
  """Base class for failures while turning a model reply into an analysis."""


class EmptyModelResponseError(MealAnalysisError):
  def __init__(self) -> None:
    super().__init__("No response from OpenAI")


class InvalidAnalysisFormatError(MealAnalysisError):
  def __init__(self) -> None:
    super().__init__("Invalid response format from AI")


class IncompleteAnalysisError(MealAnalysisError):
  def __init__(self) -> None:
    super().__init__("Incomplete analysis from AI")


def normalise_preferences(preferences: Any) -> Dict[str, Any]:
  """Return the preferences object, or an empty one for anything else."""
  return preferences if isinstance(preferences, dict) else {}


def build_analysis_prompt(preferences: Any) -> str:
  """Embed the user's preferences into the fixed analysis instruction."""
  serialised = json.dumps(normalise_preferences(preferences), ensure_ascii=False)
  return ANALYSIS_PROMPT_TEMPLATE.format(preferences=serialised)


def extract_analysis(content: str) -> Any:
  """
  Decode the JSON object embedded in ``content``.

  The greedy match spans from the first ``{`` to the last ``}``, which
  strips both leading prose and markdown fences. Without a match the whole
  text is decoded as-is.
  """
  match = JSON_OBJECT_PATTERN.search(content)
  json_string = match.group(0) if match else content
  try:
    return json.loads(json_string)
  except ValueError as exc:
    logger.error("Failed to parse model response: %s", content)
    raise InvalidAnalysisFormatError() from exc


def validate_analysis(analysis: Any) -> Dict[str, Any]:
  """Require ingredients, a nutrition block and a health score."""
  if not isinstance(analysis, dict):
    raise IncompleteAnalysisError()

  ingredients = analysis.get("ingredients")
  nutrition = analysis.get("nutrition")
  if not isinstance(ingredients, list) or not ingredients:
    raise IncompleteAnalysisError()
  if not isinstance(nutrition, dict):
    raise IncompleteAnalysisError()
  if not analysis.get("healthScore"):
    raise IncompleteAnalysisError()

  _log_out_of_range(analysis, "healthScore", 1, 10)
  _log_out_of_range(analysis, "confidence", 0, 1)
  return analysis


def _log_out_of_range(analysis: Dict[str, Any], key: str, low: float, high: float) -> None:
  value = analysis.get(key)
  if isinstance(value, (int, float)) and not isinstance(value, bool):
    if value < low or value > high:
      logger.warning("Model reported %s=%s outside the expected %s-%s range", key, value, low, high)


def apply_defaults(analysis: Dict[str, Any]) -> Dict[str, Any]:
  """Fill the delivery fields the UI always expects."""
  if analysis.get("delivery_recommendation") is None:
    analysis["delivery_recommendation"] = ""
  if not isinstance(analysis.get("delivery_options"), list):
    analysis["delivery_options"] = []
  return analysis


def find_allergen_matches(allergens: Iterable[Any], allergies: Iterable[Any]) -> List[str]:
  """
  Return the reported allergens that contain any declared allergy.

  Matching is a case-insensitive substring test, so a declared ``"peanut"``
  flags ``"Peanut sauce"``. Order follows the model's allergen list.
  """
  terms = [allergy.lower() for allergy in allergies if isinstance(allergy, str) and allergy]
  if not terms:
    return []

  matches: List[str] = []
  for allergen in allergens:
    if not isinstance(allergen, str):
      continue
    lowered = allergen.lower()
    if any(term in lowered for term in terms):
      matches.append(allergen)
  return matches


def annotate_allergens(analysis: Dict[str, Any], preferences: Any) -> Dict[str, Any]:
  """Append one aggregate allergen alert when the meal hits a user allergy."""
  allergies = normalise_preferences(preferences).get("allergies")
  if isinstance(allergies, str):
    allergies = [allergies]
  if not isinstance(allergies, list) or not allergies:
    return analysis

  allergens = analysis.get("allergens")
  if not isinstance(allergens, list):
    allergens = []

  detected = find_allergen_matches(allergens, allergies)
  if not detected:
    return analysis

  warnings = analysis.get("warnings")
  if not isinstance(warnings, list):
    warnings = [warnings] if warnings else []
  warnings.append(ALLERGEN_ALERT_TEMPLATE.format(allergens=", ".join(detected)))
  analysis["warnings"] = warnings
  return analysis


def analyze_meal(vision_client: Any, image_base64: str, preferences: Optional[Any] = None) -> Dict[str, Any]:
  """
  Run one image through the model and return the enriched analysis.

  ``vision_client`` must provide ``complete(prompt, image_url)`` returning
  the model's text (or ``None``). Errors raised by the client propagate
  unchanged.
  """
  prompt = build_analysis_prompt(preferences)
  content = vision_client.complete(prompt, build_image_data_url(image_base64))
  if not content:
    raise EmptyModelResponseError()

  analysis = validate_analysis(extract_analysis(content))
  apply_defaults(analysis)
  return annotate_allergens(analysis, preferences)


__all__ = [
  "MealAnalysisError",
  "EmptyModelResponseError",
  "InvalidAnalysisFormatError",
  "IncompleteAnalysisError",
  "build_analysis_prompt",
  "extract_analysis",
  "validate_analysis",
  "apply_defaults",
  "find_allergen_matches",
  "annotate_allergens",
  "analyze_meal",
]
