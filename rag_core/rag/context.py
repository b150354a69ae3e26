"""检索上下文与 prompt 组装。

全部为纯函数：相同输入（含顺序）产生相同文本。检索结果的顺序由向量库
负责（按 score 降序），这里不重新排序。
"""

from typing import List, Sequence

from rag_core.domain.models import ChatMessage, DocumentChunk
from rag_core.prompts import load_system_prompt

NO_CONTEXT_TEXT = "No relevant articles found for this query."
NO_HISTORY_TEXT = "No previous conversation."


def render_chunk(index: int, chunk: DocumentChunk) -> str:
    meta = chunk.metadata
    source = meta.title or meta.source or "Unknown Source"
    url = f" ({meta.url})" if meta.url else ""
    timestamp = f" - {meta.timestamp}" if meta.timestamp else ""
    return f"\nArticle {index}: {source}{url}{timestamp}\nContent: {chunk.content}\n---"


def assemble_context(chunks: Sequence[DocumentChunk]) -> str:
    """把检索结果渲染为带编号的文章列表；没有结果时返回明确的提示文本。"""

    if not chunks:
        return NO_CONTEXT_TEXT
    return "\n".join(render_chunk(i, chunk) for i, chunk in enumerate(chunks, start=1))


def format_chat_history(messages: Sequence[ChatMessage], window: int = 10) -> str:
    """按时间顺序（旧 -> 新）渲染最近 window 条消息，每行带角色前缀。"""

    recent: List[ChatMessage] = list(messages)[-window:] if window > 0 else []
    if not recent:
        return NO_HISTORY_TEXT
    return "\n".join(f"{m.role.upper()}: {m.content}" for m in recent)


def build_prompt(
    query: str,
    chunks: Sequence[DocumentChunk],
    history: Sequence[ChatMessage],
    window: int = 10,
) -> str:
    system_prompt = load_system_prompt()
    return (
        f"{system_prompt}\n\n"
        f"CONTEXT:\n{assemble_context(chunks)}\n\n"
        f"CONVERSATION HISTORY:\n{format_chat_history(history, window)}\n\n"
        f"USER QUESTION: {query}\n\n"
        "Please provide a helpful response based on the context provided."
    )
