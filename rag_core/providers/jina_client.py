"""Jina Embeddings Provider 适配器。

- URL: {base_url}/embeddings
- 认证: Authorization: Bearer <api_key>
- 请求体: {"model": ..., "input": [...]}

官方响应为 OpenAI 风格的 {"data": [{"index": i, "embedding": [...]}]}，
部分网关返回 {"embeddings": [[...]]}，两种格式都由 normalize_embeddings 归一化。
"""

import asyncio
import math
from typing import Any, Dict, List, Sequence

import httpx

from rag_core.config.settings import settings
from rag_core.domain.exceptions import ExternalServiceError
from rag_core.infrastructure.logging.logger import logger
from rag_core.providers.registry import JINA_CONFIG

SERVICE = JINA_CONFIG.service_name


def normalize_embeddings(data: Any) -> List[List[float]]:
    """把 Jina 响应 JSON 转换为按输入顺序排列的向量列表。"""

    if isinstance(data, dict):
        items = data.get("data")
        if isinstance(items, list):
            ordered = sorted(
                enumerate(items),
                key=lambda pair: pair[1].get("index", pair[0]) if isinstance(pair[1], dict) else pair[0],
            )
            return [list(item["embedding"]) for _, item in ordered]
        embeddings = data.get("embeddings")
        if isinstance(embeddings, list):
            return [list(vec) for vec in embeddings]
    raise ExternalServiceError(SERVICE, "No embeddings returned from Jina API")


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text
    if isinstance(body, dict):
        return str(body.get("message") or body.get("detail") or resp.text)
    return resp.text


class JinaEmbeddingClient:
    """Jina Embeddings 客户端实现。"""

    name = "jina"

    def __init__(self, cfg=settings):
        self._settings = cfg

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        if not getattr(self._settings, "jina_api_key", None):
            raise ExternalServiceError(SERVICE, "JINA_API_KEY not configured", {"code": "MISSING_API_KEY"})
        max_chars = self._settings.embedding_max_chars
        payload: Dict[str, Any] = {
            "model": self._settings.embedding_model,
            "input": [text[:max_chars] for text in texts],
        }
        base = getattr(self._settings, "embedding_base_url", None) or JINA_CONFIG.base_url
        try:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = await client.post(
                    f"{base}/embeddings",
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {self._settings.jina_api_key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.RequestError as e:
            logger.error("Failed to generate embeddings", extra={"extra": {"error": str(e)}})
            raise ExternalServiceError(SERVICE, str(e), {"status_code": 500, "original_error": repr(e)})
        if resp.status_code >= 400:
            message = _error_message(resp)
            logger.error(
                "Failed to generate embeddings",
                extra={"extra": {"status_code": resp.status_code, "error": message}},
            )
            raise ExternalServiceError(SERVICE, message, {"status_code": resp.status_code})

        try:
            embeddings = normalize_embeddings(resp.json())
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error("Invalid embeddings response", extra={"extra": {"status_code": resp.status_code, "error": repr(e)}})
            raise ExternalServiceError(SERVICE, f"Invalid response from Jina API: {e!r}", {"status_code": resp.status_code})
        if len(embeddings) != len(texts):
            raise ExternalServiceError(
                SERVICE,
                f"Expected {len(texts)} embeddings, got {len(embeddings)}",
            )
        logger.debug("Generated embeddings", extra={"extra": {"count": len(texts)}})
        return embeddings

    async def embed_one(self, text: str) -> List[float]:
        embeddings = await self.embed([text])
        return embeddings[0] if embeddings else []

    async def embed_batched(self, texts: Sequence[str]) -> List[List[float]]:
        """按固定批大小顺序调用 embed，批次间暂停，不做重试或退避。"""

        if not texts:
            return []
        batch_size = self._settings.embedding_batch_size
        delay = self._settings.embedding_batch_delay
        results: List[List[float]] = []
        for i in range(0, len(texts), batch_size):
            batch = list(texts[i : i + batch_size])
            results.extend(await self.embed(batch))
            if i + batch_size < len(texts) and delay > 0:
                await asyncio.sleep(delay)
        logger.info("Generated embeddings in batches", extra={"extra": {"count": len(texts), "batch_size": batch_size}})
        return results

    def validate_embedding(self, embedding: Sequence[float]) -> bool:
        return len(embedding) == self._settings.vector_size and all(
            isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v) for v in embedding
        )
