"""
Session-scoped key/value storage for a survey participant.
============================================================

Mirrors what a browser tab's session storage offers: string values under string keys,
one namespace per participant session, wiped on submission. Callers store JSON
strings; ``get_json`` / ``set_json`` do the (de)serialisation.

Two backends:
- MemorySessionStorage: a dict, for a single headless participant
- RedisSessionStorage: a per-session hash of keys in Redis, so a participant run can be
  resumed by another process ("page reload") with the same session id
"""
from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

import redis
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from .enums import SessionKey

log = logging.getLogger(__name__)


def _key(key: SessionKey | str) -> str:
    return key.value if isinstance(key, SessionKey) else str(key)


class SessionStorage(ABC):
    """String key/value storage scoped to one participant session."""

    @abstractmethod
    def get(self, key: SessionKey | str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: SessionKey | str, value: str) -> None:
        ...

    @abstractmethod
    def remove(self, key: SessionKey | str) -> None:
        ...

    @abstractmethod
    def keys(self) -> List[str]:
        ...

    def clear(self, keys: Iterable[SessionKey | str] | None = None) -> None:
        """Remove the given keys, or every key of the session when none are given."""
        for key in list(keys if keys is not None else self.keys()):
            self.remove(key)

    def get_json(self, key: SessionKey | str, default: Any = None) -> Any:
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            log.warning(f"SESSION_JSON_CORRUPT | key={_key(key)} | error={e}")
            self.remove(key)
            return default

    def set_json(self, key: SessionKey | str, value: Any) -> None:
        self.set(key, json.dumps(value))


class MemorySessionStorage(SessionStorage):
    def __init__(self, initial: Dict[str, str] | None = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: SessionKey | str) -> Optional[str]:
        return self._data.get(_key(key))

    def set(self, key: SessionKey | str, value: str) -> None:
        self._data[_key(key)] = str(value)

    def remove(self, key: SessionKey | str) -> None:
        self._data.pop(_key(key), None)

    def keys(self) -> List[str]:
        return list(self._data)


class RedisSessionStorage(SessionStorage):
    """
    Participant session storage in a Redis hash ``survey_session:<session_id>``.
    Reads retry transient connection failures; every write refreshes the TTL.
    """

    def __init__(
        self,
        client: redis.Redis,
        session_id: str,
        *,
        ttl: timedelta | None = timedelta(hours=1),
        max_retries: int = 3,
    ) -> None:
        self.redis = client
        self.session_id = session_id
        self.ttl = ttl
        self.max_retries = max_retries
        self._hash_key = f"survey_session:{session_id}"

    @classmethod
    def from_config(cls, cfg: Any, session_id: str) -> "RedisSessionStorage":
        client = redis.Redis(
            host=cfg.REDIS_HOST,
            port=cfg.REDIS_PORT,
            db=cfg.REDIS_DB,
            decode_responses=cfg.REDIS_DECODE_RESPONSES,
            socket_timeout=10,
            socket_connect_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30,
        )
        return cls(client, session_id, ttl=timedelta(seconds=cfg.REDIS_TTL_SECONDS))

    def get(self, key: SessionKey | str) -> Optional[str]:
        field_name = _key(key)
        for attempt in range(self.max_retries):
            try:
                raw = self.redis.hget(self._hash_key, field_name)
                log.debug(f"SESSION_GET | session={self.session_id} | key={field_name} | hit={raw is not None}")
                return raw
            except (ConnectionError, TimeoutError) as ce:
                log.warning(
                    f"SESSION_GET_CONNECTION_ERROR | session={self.session_id} | key={field_name} "
                    f"| attempt={attempt + 1} | error={ce}"
                )
                if attempt == self.max_retries - 1:
                    raise
                time.sleep(0.1 * (attempt + 1))
        return None

    def set(self, key: SessionKey | str, value: str) -> None:
        field_name = _key(key)
        try:
            with self.redis.pipeline() as pipe:
                pipe.hset(self._hash_key, field_name, str(value))
                if self.ttl:
                    pipe.expire(self._hash_key, int(self.ttl.total_seconds()))
                pipe.execute()
            log.debug(f"SESSION_SET | session={self.session_id} | key={field_name} | size={len(str(value))}")
        except RedisError as e:
            log.error(f"SESSION_SET_ERROR | session={self.session_id} | key={field_name} | error={e}")
            raise

    def remove(self, key: SessionKey | str) -> None:
        self.redis.hdel(self._hash_key, _key(key))

    def keys(self) -> List[str]:
        return list(self.redis.hkeys(self._hash_key))

    def clear(self, keys: Iterable[SessionKey | str] | None = None) -> None:
        if keys is None:
            deleted = self.redis.delete(self._hash_key)
            log.info(f"SESSION_DELETE_COMPLETE | session={self.session_id} | deleted_keys={deleted}")
            return
        super().clear(keys)
