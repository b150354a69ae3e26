from fnmatch import fnmatch
from typing import Dict, List, Optional, Sequence, Set, Tuple

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from rag_core.config.settings import settings
from rag_core.domain.models import ChunkMetadata, CollectionInfo, DocumentChunk, VectorSearchResult
from rag_core.infrastructure.storage.redis_store import RedisSessionStore
from rag_core.services.rag_service import RAGConfig, RAGService


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.now = start

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """内存版 redis.asyncio 客户端，只实现会话存储用到的命令，过期时间由 FakeClock 控制。"""

    def __init__(self, clock: Optional[FakeClock] = None):
        self.clock = clock or FakeClock()
        self.data: Dict[str, Tuple[str, Optional[float]]] = {}
        self.failing: Set[str] = set()
        self.closed = False

    def _check(self, op: str) -> None:
        if op in self.failing or "*" in self.failing:
            raise RedisConnectionError(f"{op}: connection refused")

    def _live(self, key: str):
        item = self.data.get(key)
        if item is None:
            return None
        _, expires_at = item
        if expires_at is not None and expires_at <= self.clock.now:
            del self.data[key]
            return None
        return item

    def ttl(self, key: str) -> float:
        item = self._live(key)
        if item is None:
            return -2
        return item[1] - self.clock.now

    async def ping(self) -> bool:
        self._check("ping")
        return True

    async def get(self, key: str) -> Optional[str]:
        self._check("get")
        item = self._live(key)
        return item[0] if item else None

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self._check("setex")
        self.data[key] = (value, self.clock.now + ttl)
        return True

    async def delete(self, *keys: str) -> int:
        self._check("delete")
        removed = 0
        for key in keys:
            if self._live(key):
                del self.data[key]
                removed += 1
        return removed

    async def expire(self, key: str, ttl: int) -> bool:
        self._check("expire")
        item = self._live(key)
        if item is None:
            return False
        self.data[key] = (item[0], self.clock.now + ttl)
        return True

    async def scan_iter(self, match: str = "*"):
        self._check("scan_iter")
        for key in list(self.data):
            if self._live(key) and fnmatch(key, match):
                yield key

    async def aclose(self) -> None:
        self.closed = True


class FakeEmbedder:
    name = "fake-embeddings"

    def __init__(self, vector: Optional[List[float]] = None, error: Optional[Exception] = None):
        self.vector = vector or [0.1, 0.2, 0.3]
        self.error = error
        self.calls: List[List[str]] = []

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        if self.error:
            raise self.error
        return [list(self.vector) for _ in texts]

    async def embed_one(self, text: str) -> List[float]:
        return (await self.embed([text]))[0]

    async def embed_batched(self, texts: Sequence[str]) -> List[List[float]]:
        return await self.embed(texts)


class FakeGenerator:
    name = "fake-llm"

    def __init__(self, answer: str = "AI is the simulation of human intelligence.", error: Optional[Exception] = None):
        self.answer = answer
        self.error = error
        self.prompts: List[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.answer


class FakeVectorStore:
    def __init__(self, results: Optional[List[VectorSearchResult]] = None):
        self.results = list(results or [])
        self.upserts: List[Tuple[List[DocumentChunk], List[List[float]]]] = []
        self.searches: List[Tuple[List[float], int, float]] = []
        self.initialized = False
        self.closed = False
        self.info_error: Optional[Exception] = None

    async def initialize(self) -> None:
        self.initialized = True

    async def upsert(self, chunks, vectors) -> None:
        self.upserts.append((list(chunks), [list(v) for v in vectors]))

    async def search(self, vector, limit, min_score) -> List[VectorSearchResult]:
        self.searches.append((list(vector), limit, min_score))
        hits = [r for r in self.results if r.score >= min_score]
        hits.sort(key=lambda r: r.score, reverse=True)
        return hits[:limit]

    async def get_info(self) -> CollectionInfo:
        if self.info_error:
            raise self.info_error
        return CollectionInfo(count=len(self.results), status="green")

    async def close(self) -> None:
        self.closed = True


def make_result(chunk_id: str, content: str, score: float, title: str = "AI Weekly") -> VectorSearchResult:
    chunk = DocumentChunk(
        id=chunk_id,
        content=content,
        metadata=ChunkMetadata(source="Tech Today", title=title, url=f"https://example.com/{chunk_id}"),
    )
    return VectorSearchResult(id=chunk_id, score=score, payload=chunk)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis(clock) -> FakeRedis:
    return FakeRedis(clock)


@pytest.fixture
def session_store(fake_redis) -> RedisSessionStore:
    return RedisSessionStore(client=fake_redis, cfg=settings)


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def vector_store() -> FakeVectorStore:
    return FakeVectorStore([make_result("c1", "AI is...", 0.9)])


@pytest.fixture
def service(session_store, vector_store, embedder, generator) -> RAGService:
    return RAGService(
        session_store=session_store,
        vector_store=vector_store,
        embedder=embedder,
        generator=generator,
        config=RAGConfig(),
    )
