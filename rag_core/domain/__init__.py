"""领域层模型与协议。

包含：
- models: ChatMessage / ChatSession / DocumentChunk 等统一数据模型。
- session: SessionStore 与 VectorStore 抽象，以及 TTL 续期结果类型。
- exceptions: 业务异常类型定义。
"""
