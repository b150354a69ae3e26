"""基于 Qdrant 的向量存储。

集合不存在时按固定维度、余弦距离懒创建。Qdrant 只接受 UUID 或整数作为
point id，非 UUID 的文档 id 通过 uuid5 映射，原始 id 保存在 payload 的
chunk_id 字段中，检索结果仍返回调用方的 id。
"""

from typing import Any, List, Optional, Sequence
from uuid import NAMESPACE_URL, UUID, uuid5

from qdrant_client import AsyncQdrantClient, models

from rag_core.config.settings import mask_url, settings
from rag_core.domain.exceptions import ExternalServiceError, InternalServerError
from rag_core.domain.models import ChunkMetadata, CollectionInfo, DocumentChunk, VectorSearchResult
from rag_core.domain.session import VectorStore
from rag_core.infrastructure.logging.logger import logger
from rag_core.providers.registry import QDRANT_SERVICE_NAME


def to_point_id(chunk_id: str) -> str:
    try:
        return str(UUID(str(chunk_id)))
    except ValueError:
        return str(uuid5(NAMESPACE_URL, str(chunk_id)))


def point_to_chunk(point: Any) -> DocumentChunk:
    """把 Qdrant 返回的 point（ScoredPoint / Record）转换为 DocumentChunk。"""

    payload = getattr(point, "payload", None) or {}
    return DocumentChunk(
        id=str(payload.get("chunk_id") or point.id),
        content=payload.get("content") or "",
        metadata=ChunkMetadata.from_dict(payload.get("metadata")),
    )


class QdrantVectorStore(VectorStore):
    def __init__(self, client: Optional[AsyncQdrantClient] = None, cfg=settings):
        self._settings = cfg
        self._collection = cfg.qdrant_collection
        self._vector_size = cfg.vector_size
        if client is None:
            client = AsyncQdrantClient(url=cfg.qdrant_url, api_key=cfg.qdrant_api_key or None)
            logger.info("Initializing Qdrant client", extra={"extra": {"url": mask_url(cfg.qdrant_url)}})
        self._client = client

    @property
    def collection_name(self) -> str:
        return self._collection

    async def initialize(self) -> None:
        try:
            collections = await self._client.get_collections()
            exists = any(c.name == self._collection for c in collections.collections)
            if not exists:
                await self._client.create_collection(
                    collection_name=self._collection,
                    vectors_config=models.VectorParams(size=self._vector_size, distance=models.Distance.COSINE),
                )
                logger.info("Created Qdrant collection", extra={"extra": {"collection": self._collection}})
            else:
                logger.info("Qdrant collection already exists", extra={"extra": {"collection": self._collection}})
        except Exception as e:
            logger.error("Failed to initialize Qdrant", extra={"extra": {"error": str(e)}})
            raise ExternalServiceError(QDRANT_SERVICE_NAME, f"Failed to initialize vector database: {e}")

    async def upsert(self, chunks: Sequence[DocumentChunk], vectors: Sequence[Sequence[float]]) -> None:
        if len(chunks) != len(vectors):
            raise InternalServerError(
                "Documents and embeddings arrays must have the same length",
                {"documents": len(chunks), "embeddings": len(vectors)},
            )
        points = [
            models.PointStruct(
                id=to_point_id(chunk.id),
                vector=list(vector),
                payload={"chunk_id": chunk.id, **chunk.to_payload()},
            )
            for chunk, vector in zip(chunks, vectors)
        ]
        try:
            await self._client.upsert(collection_name=self._collection, points=points, wait=True)
        except Exception as e:
            logger.error("Failed to upsert documents to Qdrant", extra={"extra": {"error": str(e)}})
            raise ExternalServiceError(QDRANT_SERVICE_NAME, f"Failed to store documents: {e}")
        logger.info("Upserted documents to Qdrant", extra={"extra": {"count": len(points)}})

    async def search(self, vector: Sequence[float], limit: int, min_score: float) -> List[VectorSearchResult]:
        """最近邻检索，只返回 score >= min_score 的结果，按 score 降序。"""

        try:
            response = await self._client.query_points(
                collection_name=self._collection,
                query=list(vector),
                limit=limit,
                score_threshold=min_score,
                with_payload=True,
            )
        except Exception as e:
            logger.error("Failed to search in Qdrant", extra={"extra": {"error": str(e)}})
            raise ExternalServiceError(QDRANT_SERVICE_NAME, f"Failed to search vector database: {e}")

        results: List[VectorSearchResult] = []
        for point in response.points:
            chunk = point_to_chunk(point)
            results.append(VectorSearchResult(id=chunk.id, score=float(point.score or 0.0), payload=chunk))
        results.sort(key=lambda r: r.score, reverse=True)
        logger.debug("Found similar documents in Qdrant", extra={"extra": {"count": len(results)}})
        return results

    async def get_document_by_id(self, chunk_id: str) -> Optional[DocumentChunk]:
        try:
            records = await self._client.retrieve(
                collection_name=self._collection,
                ids=[to_point_id(chunk_id)],
                with_payload=True,
            )
        except Exception as e:
            logger.error("Failed to get document from Qdrant", extra={"extra": {"id": chunk_id, "error": str(e)}})
            raise ExternalServiceError(QDRANT_SERVICE_NAME, f"Failed to retrieve document: {e}")
        if not records:
            return None
        return point_to_chunk(records[0])

    async def delete_document(self, chunk_id: str) -> bool:
        try:
            await self._client.delete(
                collection_name=self._collection,
                points_selector=models.PointIdsList(points=[to_point_id(chunk_id)]),
                wait=True,
            )
        except Exception as e:
            logger.error("Failed to delete document from Qdrant", extra={"extra": {"id": chunk_id, "error": str(e)}})
            raise ExternalServiceError(QDRANT_SERVICE_NAME, f"Failed to delete document: {e}")
        logger.debug("Deleted document from Qdrant", extra={"extra": {"id": chunk_id}})
        return True

    async def clear_collection(self) -> None:
        try:
            await self._client.delete(
                collection_name=self._collection,
                points_selector=models.FilterSelector(filter=models.Filter(must=[])),
                wait=True,
            )
        except Exception as e:
            logger.error("Failed to clear collection", extra={"extra": {"error": str(e)}})
            raise ExternalServiceError(QDRANT_SERVICE_NAME, f"Failed to clear collection: {e}")
        logger.info("Cleared all documents from collection", extra={"extra": {"collection": self._collection}})

    async def get_info(self) -> CollectionInfo:
        try:
            info = await self._client.get_collection(collection_name=self._collection)
        except Exception as e:
            logger.error("Failed to get collection info from Qdrant", extra={"extra": {"error": str(e)}})
            return CollectionInfo(count=0, status="error")
        status = getattr(info.status, "value", info.status) or "unknown"
        return CollectionInfo(count=info.points_count or 0, status=str(status))

    async def close(self) -> None:
        await self._client.close()
