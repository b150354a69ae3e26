"""新闻文章切块与入库任务。

用法：python -m rag_core.tasks.ingest articles.json

articles.json 为文章对象数组，字段为 title / description / content / url /
source / publishedAt（也接受 published_at）。
"""

from __future__ import annotations

import argparse
import asyncio
import json
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence
from uuid import uuid4

from rag_core.domain.exceptions import AppError, ValidationError
from rag_core.domain.models import ChunkMetadata, DocumentChunk
from rag_core.infrastructure.logging.logger import logger

FULL_CONTENT_MIN_CHARS = 100
SPLIT_CONTENT_MIN_CHARS = 1000
SPLIT_CHUNK_MAX_CHARS = 800

_SENTENCE_SPLIT = re.compile(r"[.!?]+")


@dataclass
class NewsArticle:
    title: str
    description: str
    url: str
    source: str
    published_at: str
    content: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NewsArticle":
        if not isinstance(data, dict):
            raise ValidationError("Article must be an object", {"value": repr(data)[:100]})
        title = (data.get("title") or "").strip()
        if not title:
            raise ValidationError("Article title is required")
        return cls(
            title=title,
            description=data.get("description") or "",
            url=data.get("url") or "",
            source=data.get("source") or "unknown",
            published_at=data.get("publishedAt") or data.get("published_at") or "",
            content=data.get("content"),
        )

    def metadata(self) -> ChunkMetadata:
        return ChunkMetadata(
            source=self.source,
            title=self.title,
            url=self.url or None,
            timestamp=self.published_at or None,
        )


def _new_chunk(content: str, article: NewsArticle) -> DocumentChunk:
    return DocumentChunk(id=str(uuid4()), content=content, metadata=article.metadata())


def split_sentences(content: str, max_chars: int = SPLIT_CHUNK_MAX_CHARS) -> List[str]:
    """按句子切分并贪心合并，单块长度不超过 max_chars（单个超长句子除外）。"""

    pieces: List[str] = []
    current = ""
    for sentence in _SENTENCE_SPLIT.split(content):
        sentence = sentence.strip()
        if not sentence:
            continue
        if len(current) + len(sentence) + 1 > max_chars:
            if current.strip():
                pieces.append(current.strip())
            current = sentence + "."
        else:
            current += sentence + "."
    if current.strip():
        pieces.append(current.strip())
    return pieces


def articles_to_chunks(articles: Iterable[NewsArticle]) -> List[DocumentChunk]:
    chunks: List[DocumentChunk] = []
    count = 0
    for article in articles:
        count += 1
        # 标题 + 摘要
        chunks.append(_new_chunk(f"{article.title}\n\n{article.description}", article))

        content = article.content or ""
        if len(content) > FULL_CONTENT_MIN_CHARS:
            chunks.append(_new_chunk(content, article))
        if len(content) > SPLIT_CONTENT_MIN_CHARS:
            chunks.extend(_new_chunk(piece, article) for piece in split_sentences(content))

    logger.info("Converted articles to document chunks", extra={"extra": {"articles": count, "chunks": len(chunks)}})
    return chunks


def load_articles(path: str | Path) -> List[NewsArticle]:
    p = Path(path)
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ValidationError(f"Articles file not found: {p}")
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid articles file: {p}", str(e))
    if not isinstance(raw, list):
        raise ValidationError("Articles file must contain a JSON array", {"path": str(p)})
    return [NewsArticle.from_dict(item) for item in raw]


async def populate_database(path: str | Path, service: Any = None) -> int:
    """切块后初始化服务并索引，记录系统统计后清理连接。返回索引的块数。

    文章文件在连接外部服务之前读取，文件有误时不会建立任何连接。
    """

    logger.info("Starting database population", extra={"extra": {"path": str(path)}})
    chunks = articles_to_chunks(load_articles(path))
    if service is None:
        from rag_core.services.rag_service import create_rag_service

        service = create_rag_service()

    try:
        await service.initialize()
        indexed = await service.index_documents(chunks)
        stats = await service.get_system_stats()
        logger.info("Database population completed", extra={"extra": {"indexed": indexed, **stats.to_dict()}})
        return indexed
    finally:
        await service.cleanup()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Chunk news articles and index them into the vector store.")
    parser.add_argument("path", help="JSON file with an array of articles")
    args = parser.parse_args(argv)
    try:
        indexed = asyncio.run(populate_database(args.path))
    except AppError as e:
        logger.error("Database population failed", extra={"extra": {"code": e.code, "error": e.message}})
        print(f"error: {e.message}", file=sys.stderr)
        return 1
    print(f"indexed {indexed} chunks")
    return 0


if __name__ == "__main__":
    sys.exit(main())
