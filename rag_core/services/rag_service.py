"""RAG 编排器核心模块。

串联 会话记录 -> 查询向量化 -> 向量检索 -> 上下文组装 -> 生成 -> 会话回写
这一条链路。所有外部依赖都通过构造函数注入，进程内共享同一组长连接客户端；
不同会话的请求可以并发执行，同一会话的并发请求不做互斥（见 RedisSessionStore）。
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple
from uuid import uuid4

from rag_core.config.settings import settings
from rag_core.domain.exceptions import AppError, ExternalServiceError, InternalServerError
from rag_core.domain.models import (
    ChatMessage,
    ChatResponse,
    DocumentChunk,
    RAGContext,
    SystemStats,
    VectorSearchResult,
)
from rag_core.domain.session import SessionStore, TTLRefreshResult, VectorStore
from rag_core.infrastructure.logging.logger import logger
from rag_core.providers.base import EmbeddingProvider, GenerationProvider
from rag_core.rag.context import build_prompt


@dataclass
class RAGConfig:
    history_window: int = 10
    max_retrieval_limit: int = 20  # 检索条数硬上限
    min_similarity_threshold: float = 0.3  # 相似度下限
    default_retrieval_limit: int = 5
    default_similarity_threshold: float = 0.7
    search_default_limit: int = 10
    search_default_threshold: float = 0.6

    @classmethod
    def from_settings(cls, cfg=settings) -> "RAGConfig":
        return cls(
            history_window=cfg.history_window,
            max_retrieval_limit=cfg.max_retrieval_limit,
            min_similarity_threshold=cfg.min_similarity_threshold,
            default_retrieval_limit=cfg.default_retrieval_limit,
            default_similarity_threshold=cfg.default_similarity_threshold,
            search_default_limit=cfg.search_default_limit,
            search_default_threshold=cfg.search_default_threshold,
        )


class RAGService:
    def __init__(
        self,
        session_store: SessionStore,
        vector_store: VectorStore,
        embedder: EmbeddingProvider,
        generator: GenerationProvider,
        config: RAGConfig | None = None,
    ):
        self._sessions = session_store
        self._vectors = vector_store
        self._embedder = embedder
        self._generator = generator
        self._config = config or RAGConfig()

    @property
    def config(self) -> RAGConfig:
        return self._config

    async def initialize(self) -> None:
        try:
            await asyncio.gather(self._vectors.initialize(), self._sessions.connect())
        except AppError as e:
            logger.error("Failed to initialize RAG Service", extra={"extra": {"error": e.message}})
            raise InternalServerError("Failed to initialize RAG Service", e.message)
        logger.info("RAG Service initialized successfully")

    async def cleanup(self) -> None:
        for name, closer in (("session_store", self._sessions.disconnect), ("vector_store", self._vectors.close)):
            try:
                await closer()
            except Exception as e:
                logger.error("Failed to cleanup RAG Service", extra={"extra": {"component": name, "error": str(e)}})
        logger.info("RAG Service cleanup completed")

    def clamp(self, limit: int, threshold: float) -> Tuple[int, float]:
        """在边界处限制检索参数：limit 不超过上限，threshold 不低于下限。"""

        limit = max(1, min(int(limit), self._config.max_retrieval_limit))
        threshold = max(float(threshold), self._config.min_similarity_threshold)
        return limit, threshold

    async def process_query(
        self,
        session_id: str,
        user_message: str,
        retrieval_limit: int | None = None,
        similarity_threshold: float | None = None,
    ) -> ChatResponse:
        """执行一次单轮 RAG 问答。

        用户消息在检索之前写入会话，后续任一步失败时该消息仍然保留；
        调用方重试会产生重复的用户消息（没有去重键）。

        Returns:
            ChatResponse，其中 sources 为带 score 的检索结果。

        Raises:
            ExternalServiceError: embedding / 向量库 / 生成模型失败或生成结果为空。
            InternalServerError: 其他编排层错误。
        """
        start_time = time.time()
        log_ctx: Dict[str, Any] = {"trace_id": f"tr-{uuid4().hex}", "session_id": session_id}
        limit, threshold = self.clamp(
            self._config.default_retrieval_limit if retrieval_limit is None else retrieval_limit,
            self._config.default_similarity_threshold if similarity_threshold is None else similarity_threshold,
        )

        try:
            # 1. 记录用户消息（会话不存在时自动创建）
            user_msg = ChatMessage.create("user", user_message)
            await self._sessions.append(session_id, user_msg)
            self._log(logging.INFO, "Stored user message", log_ctx, message_id=user_msg.id)

            # 2. 重新读取会话作为对话历史
            session = await self._sessions.get(session_id)
            history = session.messages[-self._config.history_window:] if session else []

            # 3-4. 向量化查询并检索
            query_vector = await self._embedder.embed_one(user_message)
            results = await self._vectors.search(query_vector, limit, threshold)
            chunks = [r.payload.with_score(r.score) for r in results]
            self._log(
                logging.INFO,
                "Retrieved chunks",
                log_ctx,
                count=len(chunks),
                limit=limit,
                threshold=threshold,
            )

            # 5-7. 组装 prompt 并调用生成模型
            prompt = build_prompt(user_message, chunks, history, self._config.history_window)
            answer = ((await self._generator.complete(prompt)) or "").strip()
            if not answer:
                raise ExternalServiceError(self._generator.name, "Empty response from generation provider")

            # 8. 记录助手消息
            assistant_msg = ChatMessage.create("assistant", answer)
            await self._sessions.append(session_id, assistant_msg)
            self._log(logging.INFO, "Stored assistant message", log_ctx, message_id=assistant_msg.id)
        except AppError as e:
            self._log(logging.ERROR, "Failed to process query", log_ctx, code=e.code, error=e.message)
            raise
        except Exception as e:
            self._log(logging.ERROR, "Failed to process query", log_ctx, error=str(e))
            raise InternalServerError("Failed to process chat query", str(e)) from e

        # 9. 续期失败只记日志，不影响本次请求
        refresh = await self._refresh_ttl(session_id)
        if not refresh.ok:
            self._log(logging.WARNING, "Failed to extend session TTL", log_ctx, error=refresh.error)

        rag_context = RAGContext(query=user_message, retrieved_chunks=chunks, response=answer)
        self._log(
            logging.DEBUG,
            "RAG context",
            log_ctx,
            query=rag_context.query,
            sources=[c.id for c in rag_context.retrieved_chunks],
            response_preview=rag_context.response[:200],
        )
        self._log(
            logging.INFO,
            "Completed query",
            log_ctx,
            elapsed_seconds=round(time.time() - start_time, 2),
            assistant_message_id=assistant_msg.id,
        )
        return ChatResponse(
            message=answer,
            session_id=session_id,
            message_id=assistant_msg.id,
            sources=chunks,
        )

    async def get_chat_history(self, session_id: str) -> List[ChatMessage]:
        session = await self._sessions.get(session_id)
        return list(session.messages) if session else []

    async def clear_chat_history(self, session_id: str) -> bool:
        return await self._sessions.delete(session_id)

    async def index_documents(self, chunks: Sequence[DocumentChunk]) -> int:
        """批量向量化并写入向量库，返回写入条数。

        向量数量与文档数量不一致属于契约错误，立即失败且不调用向量库。
        """
        if not chunks:
            logger.warning("No documents to index")
            return 0
        try:
            embeddings = await self._embedder.embed_batched([c.content for c in chunks])
            if len(embeddings) != len(chunks):
                raise InternalServerError(
                    "Documents and embeddings arrays must have the same length",
                    {"documents": len(chunks), "embeddings": len(embeddings)},
                )
            await self._vectors.upsert(chunks, embeddings)
        except AppError as e:
            logger.error("Failed to index documents", extra={"extra": {"code": e.code, "error": e.message}})
            raise
        except Exception as e:
            logger.error("Failed to index documents", extra={"extra": {"error": str(e)}})
            raise InternalServerError("Failed to index documents", str(e)) from e
        logger.info("Successfully indexed documents", extra={"extra": {"count": len(chunks)}})
        return len(chunks)

    async def search_similar_documents(
        self,
        query: str,
        limit: int | None = None,
        threshold: float | None = None,
    ) -> List[VectorSearchResult]:
        limit, threshold = self.clamp(
            self._config.search_default_limit if limit is None else limit,
            self._config.search_default_threshold if threshold is None else threshold,
        )
        try:
            vector = await self._embedder.embed_one(query)
            return await self._vectors.search(vector, limit, threshold)
        except AppError:
            raise
        except Exception as e:
            logger.error("Failed to search similar documents", extra={"extra": {"error": str(e)}})
            raise InternalServerError("Failed to search documents", str(e)) from e

    async def get_system_stats(self) -> SystemStats:
        try:
            info, sessions = await asyncio.gather(self._vectors.get_info(), self._sessions.count())
        except Exception as e:
            logger.error("Failed to get system stats", extra={"extra": {"error": str(e)}})
            return SystemStats(vector_db_count=0, vector_db_status="error", active_sessions=0)
        return SystemStats(vector_db_count=info.count, vector_db_status=info.status, active_sessions=sessions)

    async def _refresh_ttl(self, session_id: str) -> TTLRefreshResult:
        try:
            return await self._sessions.refresh_ttl(session_id)
        except Exception as e:
            return TTLRefreshResult(ok=False, error=str(e))

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})


def create_rag_service(cfg=settings) -> RAGService:
    """按配置装配默认的 Redis / Qdrant / Jina / Gemini 实现。"""

    # 延迟导入，测试替换依赖时不需要安装 redis / qdrant-client
    from rag_core.infrastructure.storage.qdrant_store import QdrantVectorStore
    from rag_core.infrastructure.storage.redis_store import RedisSessionStore
    from rag_core.providers import create_embedding_provider, create_generation_provider

    return RAGService(
        session_store=RedisSessionStore(cfg=cfg),
        vector_store=QdrantVectorStore(cfg=cfg),
        embedder=create_embedding_provider(cfg=cfg),
        generator=create_generation_provider(cfg=cfg),
        config=RAGConfig.from_settings(cfg),
    )
