"""Provider 与模型配置。

集中维护各厂商的服务名（用于错误信息与日志）、默认端点和模型参数，
上层只通过 settings 中的逻辑配置选择模型。"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping


@dataclass
class ModelConfig:
    """单个模型的配置。"""

    model: str
    dimension: int = 0


@dataclass
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    service_name: str
    base_url: str
    models: Dict[str, ModelConfig] = field(default_factory=dict)


JINA_CONFIG = ProviderConfig(
    name="jina",
    service_name="Jina Embeddings API",
    base_url="https://api.jina.ai/v1",
    models={
        "jina-embeddings-v2-base-en": ModelConfig(
            model="jina-embeddings-v2-base-en",
            dimension=768,
        )
    },
)

GEMINI_CONFIG = ProviderConfig(
    name="gemini",
    service_name="Gemini API",
    base_url="https://generativelanguage.googleapis.com/v1beta",
    models={
        "gemini-2.0-flash-exp": ModelConfig(model="gemini-2.0-flash-exp"),
    },
)

QDRANT_SERVICE_NAME = "Qdrant"

# Gemini 安全过滤：四类内容均在中等及以上风险时拦截
GEMINI_SAFETY_SETTINGS: List[Dict[str, str]] = [
    {"category": category, "threshold": "BLOCK_MEDIUM_AND_ABOVE"}
    for category in (
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
    )
]


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "jina": JINA_CONFIG,
    "gemini": GEMINI_CONFIG,
}


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in PROVIDER_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown provider: {name!r}")
