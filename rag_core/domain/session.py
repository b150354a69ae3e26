from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from .models import ChatMessage, ChatSession, CollectionInfo, DocumentChunk, VectorSearchResult


@dataclass
class TTLRefreshResult:
    """续期结果。失败时 error 记录原因，由调用方记日志后丢弃。"""

    ok: bool
    error: Optional[str] = None


class SessionStore(Protocol):
    async def connect(self) -> None:
        ...

    async def disconnect(self) -> None:
        ...

    async def append(self, session_id: str, message: ChatMessage) -> None:
        ...

    async def get(self, session_id: str) -> Optional[ChatSession]:
        ...

    async def delete(self, session_id: str) -> bool:
        ...

    async def refresh_ttl(self, session_id: str) -> TTLRefreshResult:
        ...

    async def count(self) -> int:
        ...


class VectorStore(Protocol):
    async def initialize(self) -> None:
        ...

    async def upsert(self, chunks: Sequence[DocumentChunk], vectors: Sequence[Sequence[float]]) -> None:
        ...

    async def search(self, vector: Sequence[float], limit: int, min_score: float) -> List[VectorSearchResult]:
        ...

    async def get_info(self) -> CollectionInfo:
        ...

    async def close(self) -> None:
        ...
