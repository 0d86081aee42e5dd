from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

SCHEMA = """
CREATE TABLE IF NOT EXISTS conversation_messages (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  conversation_id TEXT NOT NULL,
  role TEXT NOT NULL,
  content TEXT NOT NULL,
  meta_json TEXT NOT NULL,
  created_at DATETIME NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_conversation_messages_conv
  ON conversation_messages (conversation_id, id);
"""


@dataclass(frozen=True)
class ConversationMessage:
    role: str
    content: str
    timestamp: str
    meta: dict[str, Any] = field(default_factory=dict)


class ConversationLog(Protocol):
    def add_message(
        self, conversation_id: str, role: str, content: str, meta: dict[str, Any] | None = None
    ) -> None:
        ...

    def get_conversation(self, conversation_id: str) -> list[ConversationMessage]:
        ...


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryConversationLog:
    def __init__(self) -> None:
        self._conversations: dict[str, list[ConversationMessage]] = {}

    def add_message(
        self, conversation_id: str, role: str, content: str, meta: dict[str, Any] | None = None
    ) -> None:
        entry = ConversationMessage(
            role=role, content=content, timestamp=_utcnow(), meta=dict(meta or {})
        )
        self._conversations.setdefault(conversation_id, []).append(entry)

    def get_conversation(self, conversation_id: str) -> list[ConversationMessage]:
        return list(self._conversations.get(conversation_id, []))


class _ManagedSQLiteConnection(sqlite3.Connection):
    """SQLite connection that closes at context-manager exit."""

    def __exit__(self, exc_type: object, exc_value: object, traceback: object) -> bool:
        try:
            return super().__exit__(exc_type, exc_value, traceback)
        finally:
            self.close()


@dataclass
class ConversationStore:
    path: Path

    def connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self.path, factory=_ManagedSQLiteConnection)
        connection.row_factory = sqlite3.Row
        return connection

    def initialize(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.connect() as connection:
            connection.executescript(SCHEMA)

    def add_message(
        self, conversation_id: str, role: str, content: str, meta: dict[str, Any] | None = None
    ) -> None:
        with self.connect() as connection:
            connection.execute(
                """
                INSERT INTO conversation_messages
                  (conversation_id, role, content, meta_json, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (conversation_id, role, content, json.dumps(meta or {}, default=str), _utcnow()),
            )

    def get_conversation(self, conversation_id: str) -> list[ConversationMessage]:
        with self.connect() as connection:
            rows = connection.execute(
                """
                SELECT role, content, meta_json, created_at
                FROM conversation_messages
                WHERE conversation_id = ?
                ORDER BY id ASC
                """,
                (conversation_id,),
            ).fetchall()
        return [
            ConversationMessage(
                role=row["role"],
                content=row["content"],
                timestamp=row["created_at"],
                meta=json.loads(row["meta_json"]),
            )
            for row in rows
        ]

    def list_conversations(self, limit: int = 20) -> list[sqlite3.Row]:
        with self.connect() as connection:
            return connection.execute(
                """
                SELECT conversation_id, COUNT(*) AS messages, MAX(created_at) AS last_at
                FROM conversation_messages
                GROUP BY conversation_id
                ORDER BY last_at DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()


def to_model_messages(messages: list[ConversationMessage]) -> list[dict[str, Any]]:
    """Convert a transcript to chat-completions messages, dropping system entries."""
    converted: list[dict[str, Any]] = []
    for message in messages:
        if message.role == "system":
            continue
        if message.role == "tool":
            converted.append(
                {
                    "role": "tool",
                    "tool_call_id": message.meta.get("tool_call_id", ""),
                    "content": message.content,
                }
            )
            continue
        entry: dict[str, Any] = {"role": message.role, "content": message.content}
        tool_calls = message.meta.get("tool_calls")
        if message.role == "assistant" and tool_calls:
            entry["tool_calls"] = [
                {
                    "id": call["id"],
                    "type": "function",
                    "function": {"name": call["name"], "arguments": call["arguments"]},
                }
                for call in tool_calls
            ]
        converted.append(entry)
    return converted
