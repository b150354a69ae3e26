"""业务服务层。"""

from rag_core.services.rag_service import RAGConfig, RAGService, create_rag_service

__all__ = ["RAGConfig", "RAGService", "create_rag_service"]
