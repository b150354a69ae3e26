"""RAG Core 顶层包。

新闻问答 RAG 服务的核心实现：配置加载、领域模型、Embedding / 生成模型适配、
Redis 会话存储、Qdrant 向量存储、检索编排、批量索引任务与 HTTP API。
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
