"""Shared fixtures: an app wired to a mocked OpenAI handle and a temp SQLite store."""

from __future__ import annotations

from typing import Any, Dict
from unittest.mock import MagicMock

import pytest

from api.auth import TokenAuthenticator, hash_password
from api.config import Settings
from api.openai_vision import OpenAIVisionClient
from api.user_store import SQLiteUserStore
from app import create_app
from tests.helpers import TEST_PASSWORD


@pytest.fixture
def settings(tmp_path) -> Settings:
  return Settings(
    openai_api_key="test-key",
    jwt_secret_key="test-secret",
    sqlite_db_path=tmp_path / "snapmeal.db",
  )


@pytest.fixture
def openai_handle() -> MagicMock:
  return MagicMock()


@pytest.fixture
def vision_client(openai_handle: MagicMock) -> OpenAIVisionClient:
  return OpenAIVisionClient(openai_handle)


@pytest.fixture
def user_store(settings: Settings) -> SQLiteUserStore:
  return SQLiteUserStore(settings.sqlite_db_path)


@pytest.fixture
def authenticator(settings: Settings) -> TokenAuthenticator:
  return TokenAuthenticator(settings.jwt_secret_key, settings.jwt_expiration_minutes)


@pytest.fixture
def app(settings, vision_client, user_store, authenticator):
  flask_app = create_app(
    settings,
    vision_client=vision_client,
    user_store=user_store,
    authenticator=authenticator,
  )
  flask_app.config.update(TESTING=True)
  return flask_app


@pytest.fixture
def client(app):
  return app.test_client()


@pytest.fixture
def user(user_store: SQLiteUserStore) -> Dict[str, Any]:
  return user_store.create_user("ada@example.com", hash_password(TEST_PASSWORD), "Ada")


@pytest.fixture
def auth_headers(user, authenticator: TokenAuthenticator) -> Dict[str, str]:
  return {"Authorization": f"Bearer {authenticator.issue_token(user)}"}
