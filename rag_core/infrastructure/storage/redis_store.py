"""基于 Redis 的会话存储。

每个会话序列化为一条 JSON，键名为 "{prefix}{session_id}"，写入时统一设置
滑动过期时间。append 是"读-改-写"，同一会话的并发写入可能互相覆盖
（丢失更新）；单会话单写者是预期的使用方式，这里不加锁。
"""

import json
from typing import Any, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from rag_core.config.settings import mask_url, settings
from rag_core.domain.exceptions import InternalServerError
from rag_core.domain.models import ChatMessage, ChatSession, utcnow
from rag_core.domain.session import SessionStore, TTLRefreshResult
from rag_core.infrastructure.logging.logger import logger


class RedisSessionStore(SessionStore):
    def __init__(self, client: Optional[Any] = None, cfg=settings):
        self._settings = cfg
        self._ttl = int(cfg.session_ttl_seconds)
        self._prefix = cfg.session_key_prefix
        if client is None:
            client = aioredis.from_url(
                cfg.redis_url,
                password=cfg.redis_password or None,
                decode_responses=True,
            )
            logger.info("Initializing Redis client", extra={"extra": {"url": mask_url(cfg.redis_url)}})
        self._client = client

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    async def connect(self) -> None:
        try:
            await self._client.ping()
        except (RedisError, OSError) as e:
            logger.error("Failed to connect to Redis", extra={"extra": {"error": str(e)}})
            raise InternalServerError("Failed to connect to Redis", str(e))
        logger.info("Connected to Redis")

    async def disconnect(self) -> None:
        await self._client.aclose()

    def _key(self, session_id: str) -> str:
        return f"{self._prefix}{session_id}"

    async def save(self, session: ChatSession) -> None:
        """整体写回会话，并把过期时间重置为完整窗口。"""

        try:
            data = json.dumps(session.to_dict(), ensure_ascii=False)
            await self._client.setex(self._key(session.id), self._ttl, data)
        except (RedisError, OSError) as e:
            logger.error("Failed to save session", extra={"extra": {"session_id": session.id, "error": str(e)}})
            raise InternalServerError("Failed to save chat session", str(e))
        logger.debug("Saved session", extra={"extra": {"session_id": session.id}})

    async def get(self, session_id: str) -> Optional[ChatSession]:
        try:
            raw = await self._client.get(self._key(session_id))
        except (RedisError, OSError) as e:
            logger.error("Failed to get session", extra={"extra": {"session_id": session_id, "error": str(e)}})
            raise InternalServerError("Failed to retrieve chat session", str(e))
        if not raw:
            return None
        try:
            session = ChatSession.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.error("Corrupted session record", extra={"extra": {"session_id": session_id, "error": str(e)}})
            raise InternalServerError("Failed to retrieve chat session", str(e))
        logger.debug("Retrieved session", extra={"extra": {"session_id": session_id}})
        return session

    async def delete(self, session_id: str) -> bool:
        try:
            removed = await self._client.delete(self._key(session_id))
        except (RedisError, OSError) as e:
            logger.error("Failed to delete session", extra={"extra": {"session_id": session_id, "error": str(e)}})
            raise InternalServerError("Failed to delete chat session", str(e))
        logger.debug("Deleted session", extra={"extra": {"session_id": session_id, "existed": removed > 0}})
        return removed > 0

    async def append(self, session_id: str, message: ChatMessage) -> None:
        session = await self.get(session_id)
        now = utcnow()
        if session is None:
            session = ChatSession(id=session_id, messages=[message], created_at=now, updated_at=now)
        else:
            session.messages.append(message)
            # 时钟回拨时也保证 updated_at 单调不减
            session.updated_at = max(now, session.updated_at)
        await self.save(session)
        logger.debug(
            "Added message to session",
            extra={"extra": {"session_id": session_id, "message_id": message.id, "role": message.role}},
        )

    async def refresh_ttl(self, session_id: str) -> TTLRefreshResult:
        try:
            existed = await self._client.expire(self._key(session_id), self._ttl)
        except (RedisError, OSError) as e:
            return TTLRefreshResult(ok=False, error=str(e))
        if not existed:
            return TTLRefreshResult(ok=False, error="session not found")
        logger.debug("Extended TTL for session", extra={"extra": {"session_id": session_id}})
        return TTLRefreshResult(ok=True)

    async def count(self) -> int:
        """统计存活会话数。遍历全部键，过期并发发生时结果只是近似值。"""

        total = 0
        try:
            async for _ in self._client.scan_iter(match=f"{self._prefix}*"):
                total += 1
        except (RedisError, OSError) as e:
            logger.error("Failed to get session count", extra={"extra": {"error": str(e)}})
            return 0
        return total
