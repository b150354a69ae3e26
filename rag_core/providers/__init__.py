"""外部模型 Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供各厂商的具体实现 (jina_client、gemini_client)。
"""

from rag_core.config.settings import settings
from rag_core.infrastructure.logging.logger import logger
from rag_core.providers.base import EmbeddingProvider, GenerationProvider
from rag_core.providers.gemini_client import GeminiClient
from rag_core.providers.jina_client import JinaEmbeddingClient
from rag_core.providers.registry import get_provider_config


def create_embedding_provider(name: str = "jina", cfg=None) -> EmbeddingProvider:
    """根据名称创建 Embedding Provider，并检查模型维度与向量库配置一致。"""

    if cfg is None:
        cfg = settings
    provider_cfg = get_provider_config(name)
    model_cfg = provider_cfg.models.get(cfg.embedding_model)
    if model_cfg and model_cfg.dimension and model_cfg.dimension != cfg.vector_size:
        logger.warning(
            "Embedding dimension does not match vector size",
            extra={"extra": {"model": model_cfg.model, "dimension": model_cfg.dimension, "vector_size": cfg.vector_size}},
        )
    return JinaEmbeddingClient(cfg)


def create_generation_provider(name: str = "gemini", cfg=None) -> GenerationProvider:
    get_provider_config(name)
    return GeminiClient(settings if cfg is None else cfg)
