"""
Flask backend for the SnapMeal nutrition app.

The React frontend posts a base64 meal photo to ``/api/analyze-meal``; this
service forwards it to a hosted vision model, validates the JSON analysis it
returns, flags allergens the signed-in user has declared and sends the result
back. Around that sit account signup, credential login, session lookup for
the profile page and password reset.

Collaborators (model client, user store, token authenticator) are created
here by ``create_app`` unless supplied by the caller, so tests and
alternative deployments can inject their own.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from flask import Flask, request
from flask_cors import CORS

from api.auth import TokenAuthenticator, hash_password, verify_password
from api.config import MIN_PASSWORD_LENGTH, Settings
from api.meal_analysis import analyze_meal
from api.openai_vision import OpenAIVisionClient, QuotaExceededError, build_openai_client
from api.user_store import DynamoUserStore, SQLiteUserStore, build_dynamo_table

QUOTA_EXCEEDED_MESSAGE = "OpenAI API quota exceeded. Please check your billing."
MISSING_API_KEY_MESSAGE = "OpenAI API key is not configured."


def _utc_timestamp() -> str:
  return datetime.now(timezone.utc).isoformat()


def _public_user(user: Dict[str, Any]) -> Dict[str, Any]:
  return {
    "id": user["id"],
    "email": user["email"],
    "name": user.get("name"),
    "created_at": user.get("created_at"),
  }


def _build_user_store(settings: Settings):
  """Select the user store for the configured storage backend."""
  if settings.use_aws_backend:
    if not settings.aws_users_table:
      raise RuntimeError("AWS_USERS_TABLE must be set when STORAGE_BACKEND=aws.")
    return DynamoUserStore(build_dynamo_table(settings.aws_users_table, settings.aws_region))
  return SQLiteUserStore(settings.sqlite_db_path)


def _build_vision_client(settings: Settings) -> Optional[OpenAIVisionClient]:
  if not settings.openai_api_key:
    return None
  return OpenAIVisionClient(
    build_openai_client(settings.openai_api_key, timeout=settings.openai_timeout),
    model=settings.openai_model,
    max_tokens=settings.openai_max_tokens,
    temperature=settings.openai_temperature,
  )


def create_app(
  settings: Optional[Settings] = None,
  *,
  vision_client: Any = None,
  user_store: Any = None,
  authenticator: Optional[TokenAuthenticator] = None,
) -> Flask:
  """Instantiate the Flask application and register routes."""
  settings = settings or Settings.from_env()
  app = Flask(__name__)
  CORS(app, resources={r"/*": {"origins": settings.cors_origins}})

  if vision_client is None:
    vision_client = _build_vision_client(settings)
    if vision_client is None:
      app.logger.warning("OPENAI_API_KEY missing; meal analysis requests will fail.")
  if user_store is None:
    user_store = _build_user_store(settings)
  if authenticator is None:
    authenticator = TokenAuthenticator(settings.jwt_secret_key, settings.jwt_expiration_minutes)

  app.extensions["snapmeal"] = {
    "settings": settings,
    "vision_client": vision_client,
    "user_store": user_store,
    "authenticator": authenticator,
  }

  def _current_session() -> Optional[Dict[str, Any]]:
    return authenticator.authenticate(request.headers.get("Authorization"))

  @app.route("/api/analyze-meal", methods=["GET"])
  def analyze_meal_health() -> Tuple[Dict[str, Any], int]:
    """Health check for the analysis endpoint."""
    return {
      "status": "ok",
      "message": "Meal analysis API is running",
      "timestamp": _utc_timestamp(),
    }, 200

  @app.route("/api/analyze-meal", methods=["POST"])
  def analyze_meal_route() -> Tuple[Dict[str, Any], int]:
    """
    Analyse a base64 meal photo for the signed-in user.

    Body: ``{"imageBase64": str, "userPreferences": {"dietary": [...],
    "allergies": [...], "goals": [...]}}``.
    """
    try:
      session = _current_session()
      if not session:
        return {"error": "Authentication required"}, 401

      payload = request.get_json(force=True, silent=True)
      if payload is None and request.get_data():
        raise ValueError("Request body is not valid JSON")
      if not isinstance(payload, dict):
        payload = {}

      image_base64 = payload.get("imageBase64")
      if not image_base64 or not isinstance(image_base64, str):
        return {"error": "Image data is required"}, 400

      if vision_client is None:
        raise RuntimeError(MISSING_API_KEY_MESSAGE)

      analysis = analyze_meal(vision_client, image_base64, payload.get("userPreferences"))
      app.logger.info(
        "Meal analysed for user %s (%s ingredients)", session["sub"], len(analysis["ingredients"])
      )
      return {"success": True, "analysis": analysis, "timestamp": _utc_timestamp()}, 200

    except QuotaExceededError as exc:
      app.logger.error("Meal analysis error: %s", exc)
      return {"error": QUOTA_EXCEEDED_MESSAGE}, 429
    except Exception as exc:
      app.logger.exception("Meal analysis error: %s", exc)
      return {"error": str(exc) or "Analysis failed"}, 500

  @app.route("/api/signup", methods=["POST"])
  def signup() -> Tuple[Dict[str, Any], int]:
    """Register a new account with a hashed password."""
    payload = request.get_json(force=True, silent=True)
    if not isinstance(payload, dict):
      payload = {}
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    name = payload.get("name")

    if not email or not password:
      return {"error": "Missing fields"}, 400

    if user_store.get_user(email):
      return {"error": "User exists"}, 409

    user = user_store.create_user(email, hash_password(password), name)
    if user is None:
      # Storage layer returned a conflict (duplicate email)
      return {"error": "User exists"}, 409

    app.logger.info("Registered user %s", user["id"])
    return {"ok": True, "userId": user["id"]}, 201

  @app.route("/api/auth/login", methods=["POST"])
  def login() -> Tuple[Dict[str, Any], int]:
    """Authenticate an existing user and return a session token."""
    payload = request.get_json(force=True, silent=True)
    if not isinstance(payload, dict):
      payload = {}
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""

    if not email or not password:
      return {"error": "Missing fields"}, 400

    user = user_store.get_user(email)
    if not user or not verify_password(user.get("password_hash"), password):
      return {"error": "Invalid credentials"}, 401

    return {"token": authenticator.issue_token(user), "user": _public_user(user)}, 200

  @app.route("/api/auth/session", methods=["GET"])
  def session_info() -> Tuple[Dict[str, Any], int]:
    """Return the profile of the signed-in user."""
    session = _current_session()
    if not session:
      return {"error": "Authentication required"}, 401

    user = user_store.get_user(session["email"])
    if not user or user["id"] != session["sub"]:
      return {"error": "User not found"}, 404

    return {"user": _public_user(user)}, 200

  @app.route("/api/reset-password", methods=["POST"])
  def reset_password() -> Tuple[Dict[str, Any], int]:
    """Replace the signed-in user's password after checking the current one."""
    try:
      session = _current_session()
      if not session:
        return {"error": "Authentication required"}, 401

      payload = request.get_json(force=True, silent=True)
      if not isinstance(payload, dict):
        payload = {}
      current_password = payload.get("currentPassword")
      new_password = payload.get("newPassword")

      if not current_password or not new_password:
        return {"error": "Missing fields"}, 400
      if not isinstance(new_password, str) or len(new_password) < MIN_PASSWORD_LENGTH:
        return {"error": f"New password must be at least {MIN_PASSWORD_LENGTH} characters"}, 400

      user = user_store.get_user(session["email"])
      if not user or user["id"] != session["sub"]:
        return {"error": "User not found"}, 404
      if not user.get("password_hash"):
        return {"error": "No password set for this account"}, 400

      if not isinstance(current_password, str) or not verify_password(user["password_hash"], current_password):
        return {"error": "Current password is incorrect"}, 403

      user_store.update_password(user["email"], hash_password(new_password))
      app.logger.info("Password updated for user %s", user["id"])
      return {"ok": True}, 200

    except Exception as exc:
      app.logger.exception("reset-password error: %s", exc)
      return {"error": str(exc) or "Server error"}, 500

  @app.route("/health", methods=["GET"])
  def health() -> Tuple[Dict[str, str], int]:
    """Simple health-check endpoint."""
    return {"status": "ok", "timestamp": _utc_timestamp()}, 200

  return app


if __name__ == "__main__":
  app_settings = Settings.from_env()
  logging.basicConfig(
    level=app_settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
  )
  flask_app = create_app(app_settings)
  flask_app.run(host="0.0.0.0", port=5000, debug=True)
