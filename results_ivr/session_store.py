"""
通話セッションストアモジュール (Call Session Store Module)

通話ごとの会話状態 (CallSession) を通話IDをキーに保持します。
セッションは通話中だけ存在し、無操作が続くと TTL で失効します。

書き込みはバージョン番号による compare-and-set で行い、同じ通話の
重複ターン (トランスポートの再送など) が状態を二重に進めないようにします。
"""

import dataclasses
import json
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

import redis

from .storage import StorageError


class CallState(str, Enum):
    """通話の状態"""
    WELCOME = "welcome"
    LANGUAGE_SELECT = "language_select"
    USERNAME_PROMPT = "username_prompt"
    PASSWORD_PROMPT = "password_prompt"
    DELIVER_RESULTS = "deliver_results"
    REPEAT_MESSAGE = "repeat_message"
    ERROR = "error"


@dataclass
class CallSession:
    """
    通話セッション

    Attributes:
        call_id: 通話ID (Vonage の uuid)
        state: 現在の状態
        language: 選択された言語 (未選択は None)
        username: 入力されたユーザー名
        visit_id: 認証済みの受診ID
        welcome_count: 言語選択のやり直し回数
        username_count: ユーザー名入力のやり直し回数
        password_count: パスワード入力のやり直し回数
        message_count: 結果メッセージの繰り返し回数
        message: 最後に配信した結果メッセージ (繰り返し再生用)
        version: compare-and-set 用のバージョン (未保存は 0)
        updated_at: 最終更新日時
    """
    call_id: str
    state: CallState = CallState.WELCOME
    language: Optional[str] = None
    username: Optional[str] = None
    visit_id: Optional[int] = None
    welcome_count: int = 0
    username_count: int = 0
    password_count: int = 0
    message_count: int = 0
    message: Optional[str] = None
    version: int = 0
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        data["state"] = self.state.value
        data["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CallSession":
        data = dict(data)
        data["state"] = CallState(data["state"])
        if data.get("updated_at"):
            data["updated_at"] = datetime.fromisoformat(data["updated_at"])
        return cls(**data)


class StaleSessionError(Exception):
    """
    セッションの compare-and-set に失敗した

    同じ通話の別のターンが先にセッションを更新した場合に発生します。
    """

    def __init__(self, call_id: str, expected_version: int, actual_version: Optional[int] = None):
        super().__init__(
            f"Session {call_id} changed concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )
        self.call_id = call_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class SessionStore(ABC):
    """
    セッションストアの抽象基底クラス

    Attributes:
        ttl_seconds: 最終更新からセッションが失効するまでの秒数
    """

    def __init__(self, ttl_seconds: int = 3600):
        self.ttl_seconds = ttl_seconds

    @abstractmethod
    def load(self, call_id: str) -> Optional[CallSession]:
        """
        セッションを取得

        Returns:
            セッション、存在しないか失効している場合は None
        """
        pass

    @abstractmethod
    def save(self, session: CallSession, expected_version: int) -> CallSession:
        """
        セッションを compare-and-set で保存

        保存済みのバージョンが expected_version と一致する場合だけ保存し、
        session.version を expected_version + 1 にします。未保存の
        セッションのバージョンは 0 とみなします。

        Raises:
            StaleSessionError: バージョンが一致しない場合
            StorageError: バックエンドの I/O に失敗した場合
        """
        pass

    @abstractmethod
    def delete(self, call_id: str) -> bool:
        """セッションを削除。削除した場合は True"""
        pass

    def _stamp(self, session: CallSession, expected_version: int) -> CallSession:
        return dataclasses.replace(
            session,
            version=expected_version + 1,
            updated_at=datetime.now()
        )


class InMemorySessionStore(SessionStore):
    """
    プロセス内メモリのセッションストア

    単一プロセスでの運用とテスト向けです。複数ワーカーで運用する場合は
    RedisSessionStore を使用します。
    """

    def __init__(self, ttl_seconds: int = 3600, clock: Callable[[], float] = time.monotonic):
        super().__init__(ttl_seconds)
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: Dict[str, Tuple[Dict[str, Any], float]] = {}

    def _get_live(self, call_id: str) -> Optional[Dict[str, Any]]:
        entry = self._sessions.get(call_id)
        if entry is None:
            return None
        data, expires_at = entry
        if self._clock() >= expires_at:
            del self._sessions[call_id]
            return None
        return data

    def _evict_expired(self) -> None:
        """失効したセッションをすべて破棄する (終了イベントが届かなかった通話など)"""
        now = self._clock()
        expired = [call_id for call_id, (_, expires_at) in self._sessions.items() if now >= expires_at]
        for call_id in expired:
            del self._sessions[call_id]

    def load(self, call_id: str) -> Optional[CallSession]:
        with self._lock:
            data = self._get_live(call_id)
        return CallSession.from_dict(data) if data is not None else None

    def save(self, session: CallSession, expected_version: int) -> CallSession:
        with self._lock:
            self._evict_expired()
            current = self._get_live(session.call_id)
            current_version = current["version"] if current is not None else 0
            if current_version != expected_version:
                raise StaleSessionError(session.call_id, expected_version, current_version)

            stamped = self._stamp(session, expected_version)
            self._sessions[session.call_id] = (stamped.to_dict(), self._clock() + self.ttl_seconds)

        session.version = stamped.version
        session.updated_at = stamped.updated_at
        return session

    def delete(self, call_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(call_id, None) is not None


class RedisSessionStore(SessionStore):
    """
    Redis のセッションストア

    キー: {key_prefix}:{call_id} に JSON を SETEX で保存します。
    compare-and-set は WATCH / MULTI で行います。
    """

    def __init__(self, client: redis.Redis, ttl_seconds: int = 3600, key_prefix: str = "call_session"):
        super().__init__(ttl_seconds)
        self._client = client
        self._prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int = 3600) -> "RedisSessionStore":
        return cls(redis.Redis.from_url(url, decode_responses=True), ttl_seconds=ttl_seconds)

    def _key(self, call_id: str) -> str:
        return f"{self._prefix}:{call_id}"

    def load(self, call_id: str) -> Optional[CallSession]:
        try:
            data = self._client.get(self._key(call_id))
        except redis.RedisError as e:
            raise StorageError(f"Failed to load session: {e}") from e
        if not data:
            return None
        return CallSession.from_dict(json.loads(data))

    def save(self, session: CallSession, expected_version: int) -> CallSession:
        key = self._key(session.call_id)
        stamped = self._stamp(session, expected_version)
        try:
            with self._client.pipeline() as pipe:
                pipe.watch(key)
                current = pipe.get(key)
                current_version = json.loads(current)["version"] if current else 0
                if current_version != expected_version:
                    pipe.reset()
                    raise StaleSessionError(session.call_id, expected_version, current_version)

                pipe.multi()
                pipe.setex(key, self.ttl_seconds, json.dumps(stamped.to_dict()))
                pipe.execute()
        except redis.WatchError as e:
            raise StaleSessionError(session.call_id, expected_version) from e
        except redis.RedisError as e:
            raise StorageError(f"Failed to save session: {e}") from e

        session.version = stamped.version
        session.updated_at = stamped.updated_at
        return session

    def delete(self, call_id: str) -> bool:
        try:
            return bool(self._client.delete(self._key(call_id)))
        except redis.RedisError as e:
            raise StorageError(f"Failed to delete session: {e}") from e
