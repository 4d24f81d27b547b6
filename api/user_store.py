"""
User persistence backends.

Both stores expose the same three calls used by the routes:
``get_user(email)``, ``create_user(email, password_hash, name)`` and
``update_password(email, password_hash)``. Emails are stored lower-cased and
are the natural key; ``create_user`` returns ``None`` for a duplicate.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


def _new_user_record(email: str, password_hash: str, name: Optional[str]) -> Dict[str, Any]:
  return {
    "id": uuid.uuid4().hex,
    "email": email.lower(),
    "name": name,
    "password_hash": password_hash,
    "created_at": datetime.now(timezone.utc).isoformat(),
  }


class SQLiteUserStore:
  """Users table in a local SQLite database, used for development."""

  def __init__(self, db_path: Path) -> None:
    self.db_path = Path(db_path)
    self._initialise()

  def _connect(self) -> sqlite3.Connection:
    """Return a SQLite connection with row access by name."""
    self.db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(self.db_path)
    conn.row_factory = sqlite3.Row
    return conn

  def _initialise(self) -> None:
    """Ensure the users table exists with the expected schema."""
    with closing(self._connect()) as conn, conn:
      conn.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
          id TEXT PRIMARY KEY,
          email TEXT UNIQUE NOT NULL,
          name TEXT,
          password_hash TEXT,
          created_at TEXT NOT NULL
        )
        """
      )

  def get_user(self, email: str) -> Optional[Dict[str, Any]]:
    """Return a user record by email."""
    with closing(self._connect()) as conn:
      row = conn.execute(
        """
        SELECT id, email, name, password_hash, created_at
        FROM users
        WHERE lower(email) = lower(?)
        """,
        (email,),
      ).fetchone()

    if row is None:
      return None
    return dict(row)

  def create_user(self, email: str, password_hash: str, name: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Persist a new user; ``None`` when the email is already registered."""
    record = _new_user_record(email, password_hash, name)
    try:
      with closing(self._connect()) as conn, conn:
        conn.execute(
          """
          INSERT INTO users (id, email, name, password_hash, created_at)
          VALUES (?, ?, ?, ?, ?)
          """,
          (record["id"], record["email"], record["name"], record["password_hash"], record["created_at"]),
        )
    except sqlite3.IntegrityError:
      return None
    return record

  def update_password(self, email: str, password_hash: str) -> None:
    with closing(self._connect()) as conn, conn:
      conn.execute(
        "UPDATE users SET password_hash = ? WHERE lower(email) = lower(?)",
        (password_hash, email),
      )


def build_dynamo_table(table_name: str, region: Optional[str] = None):
  """Return a DynamoDB Table resource bound to the configured region."""
  resource_kwargs: Dict[str, Any] = {}
  if region:
    resource_kwargs["region_name"] = region
  dynamo = boto3.resource("dynamodb", **resource_kwargs)
  return dynamo.Table(table_name)


def _to_dynamo_item(record: Dict[str, Any]) -> Dict[str, Any]:
  """DynamoDB rejects null attributes, so unset fields are left out."""
  return {key: value for key, value in record.items() if value is not None}


class DynamoUserStore:
  """Users table in DynamoDB, partitioned by lower-cased email."""

  def __init__(self, table: Any) -> None:
    self.table = table

  def get_user(self, email: str) -> Optional[Dict[str, Any]]:
    response = self.table.get_item(Key={"email": email.lower()})
    item = response.get("Item")
    if not item:
      return None
    user = dict(item)
    user.setdefault("name", None)
    user.setdefault("password_hash", None)
    return user

  def create_user(self, email: str, password_hash: str, name: Optional[str] = None) -> Optional[Dict[str, Any]]:
    record = _new_user_record(email, password_hash, name)
    try:
      self.table.put_item(
        Item=_to_dynamo_item(record),
        ConditionExpression="attribute_not_exists(email)",
      )
    except ClientError as exc:
      if exc.response["Error"]["Code"] == "ConditionalCheckFailedException":
        return None
      raise
    return record

  def update_password(self, email: str, password_hash: str) -> None:
    self.table.update_item(
      Key={"email": email.lower()},
      UpdateExpression="SET password_hash = :hash",
      ExpressionAttributeValues={":hash": password_hash},
    )


__all__ = ["SQLiteUserStore", "DynamoUserStore", "build_dynamo_table"]
