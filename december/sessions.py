"""Conversation sessions and the store that owns them."""

from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from threading import RLock
from typing import Callable, Protocol
from uuid import uuid4

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Attachment:
    type: str  # "image" | "document"
    data: str  # base64 payload
    name: str
    mime_type: str
    size: int = 0

    def decoded_text(self) -> str:
        return base64.b64decode(self.data).decode("utf-8", errors="replace")

    @classmethod
    def from_dict(cls, data: dict) -> Attachment:
        kind = data.get("type")
        if kind not in ("image", "document"):
            raise ValueError(f"Unknown attachment type '{kind}'. Expected 'image' or 'document'")
        return cls(
            type=kind,
            data=data["data"],
            name=data.get("name", ""),
            mime_type=data.get("mimeType") or data.get("mime_type", ""),
            size=int(data.get("size", 0)),
        )


@dataclass(frozen=True)
class Message:
    id: str
    role: str  # "user" | "assistant"
    content: str
    timestamp: datetime
    attachments: tuple[Attachment, ...] = ()

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.attachments:
            data["attachments"] = [
                {"type": a.type, "name": a.name, "mimeType": a.mime_type, "size": a.size}
                for a in self.attachments
            ]
        return data


def new_message_id(role: str) -> str:
    return f"{role}-{uuid4().hex[:12]}"


@dataclass
class Session:
    id: str
    environment_id: str
    created_at: datetime
    updated_at: datetime
    messages: list[Message] = field(default_factory=list)
    lock: RLock = field(default_factory=RLock, repr=False, compare=False)
    # Held for a whole turn so two turns never interleave their messages.
    turn_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    def snapshot(self) -> list[Message]:
        with self.lock:
            return list(self.messages)


class EvictionPolicy(Protocol):
    def should_evict(self, session: Session, now: datetime) -> bool: ...


class KeepForever:
    """Sessions live for the lifetime of the process."""

    def should_evict(self, session: Session, now: datetime) -> bool:
        return False


class IdleEviction:
    def __init__(self, max_idle: timedelta):
        self.max_idle = max_idle

    def should_evict(self, session: Session, now: datetime) -> bool:
        return now - session.updated_at > self.max_idle


class SessionStore:
    """Process-wide mapping from session id to conversation history.

    Creation and lookup by environment id happen under one lock so that two
    concurrent first messages for the same environment share a session.
    Appends to a session are serialized by that session's own lock, and
    whole turns by its ``turn_lock``.
    """

    def __init__(self, clock: Clock | None = None, eviction: EvictionPolicy | None = None):
        self.clock = clock or utc_now
        self.eviction = eviction or KeepForever()
        self._sessions: dict[str, Session] = {}
        self._by_environment: dict[str, str] = {}
        self._lock = RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _new_session(self, environment_id: str) -> Session:
        now = self.clock()
        session_id = f"{environment_id}-{int(now.timestamp() * 1000)}"
        while session_id in self._sessions:
            session_id = f"{environment_id}-{uuid4().hex[:8]}"
        session = Session(id=session_id, environment_id=environment_id, created_at=now, updated_at=now)
        self._sessions[session_id] = session
        self._by_environment[environment_id] = session_id
        logger.debug("Created session %s for environment %s", session_id, environment_id)
        return session

    def create(self, environment_id: str) -> Session:
        with self._lock:
            return self._new_session(environment_id)

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    def get_or_create(self, environment_id: str) -> Session:
        with self._lock:
            session_id = self._by_environment.get(environment_id)
            if session_id is not None and session_id in self._sessions:
                return self._sessions[session_id]
            return self._new_session(environment_id)

    def list_sessions(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def append(self, session: Session, message: Message) -> list[Message]:
        """Append ``message``; return the history up to and including it."""
        with session.lock:
            session.messages.append(message)
            session.updated_at = self.clock()
            return list(session.messages)

    def evict_expired(self) -> list[str]:
        """Drop sessions the eviction policy rejects; return their ids."""
        now = self.clock()
        with self._lock:
            expired = [s for s in self._sessions.values() if self.eviction.should_evict(s, now)]
            for session in expired:
                self._forget(session)
        for session in expired:
            logger.info("Evicted idle session %s", session.id)
        return [s.id for s in expired]

    def _forget(self, session: Session) -> None:
        self._sessions.pop(session.id, None)
        if self._by_environment.get(session.environment_id) == session.id:
            del self._by_environment[session.environment_id]

    def teardown(self) -> None:
        with self._lock:
            self._sessions.clear()
            self._by_environment.clear()
