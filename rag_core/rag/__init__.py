"""检索增强：上下文组装与 prompt 构造。"""

from rag_core.rag.context import assemble_context, build_prompt, format_chat_history

__all__ = ["assemble_context", "build_prompt", "format_chat_history"]
