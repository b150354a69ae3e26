from datetime import datetime, timezone

from rag_core.domain.models import ChatMessage, ChunkMetadata, DocumentChunk
from rag_core.prompts import load_system_prompt
from rag_core.rag.context import (
    NO_CONTEXT_TEXT,
    NO_HISTORY_TEXT,
    assemble_context,
    build_prompt,
    format_chat_history,
)


def _chunk(content, **meta):
    meta.setdefault("source", "Tech Today")
    return DocumentChunk(id="c", content=content, metadata=ChunkMetadata(**meta), score=0.9)


def _msg(role, content):
    return ChatMessage(id=content, role=role, content=content, timestamp=datetime.now(timezone.utc))


def test_empty_context_uses_sentinel():
    assert assemble_context([]) == NO_CONTEXT_TEXT
    assert assemble_context([]) != ""


def test_context_renders_articles_in_given_order():
    text = assemble_context(
        [
            _chunk("first", title="A", url="https://a", timestamp="2024-01-01T00:00:00Z"),
            _chunk("second"),
        ]
    )
    assert "Article 1: A (https://a) - 2024-01-01T00:00:00Z\nContent: first\n---" in text
    assert "Article 2: Tech Today\nContent: second\n---" in text
    assert text.index("Article 1") < text.index("Article 2")


def test_context_falls_back_to_unknown_source():
    text = assemble_context([_chunk("x", source="")])
    assert "Article 1: Unknown Source" in text


def test_context_is_deterministic():
    chunks = [_chunk("a", title="A"), _chunk("b", title="B")]
    assert assemble_context(chunks) == assemble_context(list(chunks))


def test_history_oldest_first_with_roles():
    text = format_chat_history([_msg("user", "hi"), _msg("assistant", "hello")])
    assert text == "USER: hi\nASSISTANT: hello"


def test_history_window_keeps_latest_messages():
    messages = [_msg("user", f"m{i}") for i in range(15)]
    lines = format_chat_history(messages, window=10).splitlines()
    assert len(lines) == 10
    assert lines[0] == "USER: m5"
    assert lines[-1] == "USER: m14"


def test_empty_history_uses_sentinel():
    assert format_chat_history([]) == NO_HISTORY_TEXT


def test_build_prompt_layout():
    prompt = build_prompt("What is AI?", [_chunk("AI is...", title="AI")], [_msg("user", "What is AI?")])
    assert prompt.startswith(load_system_prompt())
    assert "CONTEXT:\n\nArticle 1: AI" in prompt
    assert "CONVERSATION HISTORY:\nUSER: What is AI?" in prompt
    assert "USER QUESTION: What is AI?" in prompt
    assert prompt.endswith("Please provide a helpful response based on the context provided.")


def test_system_prompt_is_grounding_directive():
    text = load_system_prompt()
    assert "Use ONLY the information provided in the context" in text
    assert "Cite sources" in text
