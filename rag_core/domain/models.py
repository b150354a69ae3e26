"""统一的会话、文档与检索结果数据模型。

- ChatMessage: 一条会话消息（user/assistant），创建后不可变。
- ChatSession: 会话及其按插入顺序排列的消息列表，由 SessionStore 独占持有。
- DocumentChunk: 可检索的文本块及其元数据；score 只在检索结果中临时出现，不落库。
- VectorSearchResult: 向量库返回的一条命中记录。
- ChatResponse / RAGContext / SystemStats: 编排器对外返回或仅用于日志的结构。

所有 Provider 与存储适配器都只依赖这些模型，各自负责在线格式与模型之间的转换。
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional
from uuid import uuid4


Role = Literal["user", "assistant"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def from_iso(raw: str) -> datetime:
    return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))


@dataclass(frozen=True)
class ChatMessage:
    id: str
    role: Role
    content: str
    timestamp: datetime

    @classmethod
    def create(cls, role: Role, content: str) -> "ChatMessage":
        return cls(id=str(uuid4()), role=role, content=content, timestamp=utcnow())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": to_iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        return cls(
            id=data["id"],
            role=data["role"],
            content=data.get("content") or "",
            timestamp=from_iso(data["timestamp"]),
        )


@dataclass
class ChatSession:
    id: str
    messages: List[ChatMessage]
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "messages": [m.to_dict() for m in self.messages],
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatSession":
        return cls(
            id=data["id"],
            messages=[ChatMessage.from_dict(m) for m in data.get("messages") or []],
            created_at=from_iso(data["createdAt"]),
            updated_at=from_iso(data["updatedAt"]),
        )


@dataclass
class ChunkMetadata:
    source: str
    title: Optional[str] = None
    url: Optional[str] = None
    timestamp: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"source": self.source}
        for key in ("title", "url", "timestamp"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ChunkMetadata":
        data = data or {}
        return cls(
            source=data.get("source") or "unknown",
            title=data.get("title"),
            url=data.get("url"),
            timestamp=data.get("timestamp"),
        )


@dataclass
class DocumentChunk:
    id: str
    content: str
    metadata: ChunkMetadata
    score: Optional[float] = None

    def with_score(self, score: float) -> "DocumentChunk":
        return replace(self, score=score)

    def to_payload(self) -> Dict[str, Any]:
        """写入向量库的 payload，不包含 score。"""
        return {"content": self.content, "metadata": self.metadata.to_dict()}

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, **self.to_payload()}
        if self.score is not None:
            data["score"] = self.score
        return data


@dataclass
class VectorSearchResult:
    id: str
    score: float
    payload: DocumentChunk

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "score": self.score, "payload": self.payload.to_dict()}


@dataclass
class ChatResponse:
    message: str
    session_id: str
    message_id: str
    sources: List[DocumentChunk] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "session_id": self.session_id,
            "message_id": self.message_id,
            "sources": [c.to_dict() for c in self.sources],
        }


@dataclass
class RAGContext:
    """单次问答的检索上下文，仅用于日志观测，不持久化。"""

    query: str
    retrieved_chunks: List[DocumentChunk]
    response: str


@dataclass
class CollectionInfo:
    count: int
    status: str


@dataclass
class SystemStats:
    vector_db_count: int
    vector_db_status: str
    active_sessions: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vectorDbCount": self.vector_db_count,
            "vectorDbStatus": self.vector_db_status,
            "activeSessions": self.active_sessions,
        }
