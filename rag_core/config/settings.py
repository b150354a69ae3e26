"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置，并提供数据库连接配置的校验。
"""

import os
import re
import warnings
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("RAG_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """服务配置（使用 Pydantic）。"""

    # ---- 运行环境 ----
    environment: str = Field(default="development", description="运行环境：development / production")
    port: int = Field(default=3001, ge=1, le=65535, description="HTTP 服务端口")
    cors_origin: str = Field(default="http://localhost:5173", description="允许的跨域来源")

    # ---- Provider 密钥 ----
    google_api_key: Optional[str] = Field(default=None, description="Gemini API 密钥")
    jina_api_key: Optional[str] = Field(default=None, description="Jina Embeddings API 密钥")

    # ---- 向量库 (Qdrant) ----
    qdrant_url: str = Field(default="http://localhost:6333", description="Qdrant 服务地址")
    qdrant_api_key: Optional[str] = Field(default=None, description="Qdrant API 密钥")
    qdrant_collection: str = Field(default="news_articles", description="集合名称")
    vector_size: int = Field(default=768, ge=1, description="向量维度（需与 embedding 模型一致）")

    # ---- 会话存储 (Redis) ----
    redis_url: str = Field(default="redis://localhost:6379", description="Redis 连接地址")
    redis_password: Optional[str] = Field(default=None, description="Redis 密码")
    session_ttl_seconds: int = Field(default=24 * 60 * 60, ge=1, description="会话滑动过期时间（秒）")
    session_key_prefix: str = Field(default="chat:session:", description="会话键名前缀")

    # ---- HTTP ----
    http_timeout: float = Field(default=30.0, ge=1.0, description="外部调用超时时间（秒）")

    # ---- Embedding ----
    embedding_model: str = Field(default="jina-embeddings-v2-base-en")
    embedding_base_url: str = Field(default="https://api.jina.ai/v1")
    embedding_max_chars: int = Field(default=8192, ge=1, description="单条文本最大字符数")
    embedding_batch_size: int = Field(default=10, ge=1, description="批量 embedding 的批大小")
    embedding_batch_delay: float = Field(default=0.1, ge=0.0, description="批次间暂停（秒）")

    # ---- Generation ----
    generation_model: str = Field(default="gemini-2.0-flash-exp")
    gemini_base_url: str = Field(default="https://generativelanguage.googleapis.com/v1beta")
    generation_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    generation_top_p: float = Field(default=0.95, ge=0.0, le=1.0)
    generation_top_k: int = Field(default=64, ge=1)
    generation_max_output_tokens: int = Field(default=2048, ge=1)

    # ---- 检索策略 ----
    history_window: int = Field(default=10, ge=1, le=100, description="参与 prompt 的最近消息数")
    default_retrieval_limit: int = Field(default=5, ge=1)
    default_similarity_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    search_default_limit: int = Field(default=10, ge=1)
    search_default_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    max_retrieval_limit: int = Field(default=20, ge=1, description="检索条数硬上限")
    min_similarity_threshold: float = Field(default=0.3, ge=0.0, le=1.0, description="相似度下限")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_level: str = Field(default="INFO", description="控制台日志级别")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("google_api_key", "jina_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = Settings()


_CREDENTIALS_RE = re.compile(r"//.*@")


def mask_url(url: str) -> str:
    """隐藏 URL 中的用户名/密码，便于写日志。"""

    return _CREDENTIALS_RE.sub("//***@", url or "")


def _is_local(url: str) -> bool:
    return "localhost" in url or "127.0.0.1" in url


def validate_database_config(cfg: Settings = settings) -> None:
    """校验 Qdrant / Redis 连接配置。

    地址缺失或格式非法时抛出 ValidationError；生产环境下对本地地址、
    缺少 API key 的 Qdrant Cloud 地址只给出告警。
    """

    # 延迟导入，避免 config 与 logging 之间的循环依赖
    from rag_core.domain.exceptions import ValidationError
    from rag_core.infrastructure.logging.logger import logger

    for name, url in (("QDRANT_URL", cfg.qdrant_url), ("REDIS_URL", cfg.redis_url)):
        if not url:
            raise ValidationError(f"{name} environment variable is required")
        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            raise ValidationError(f"Invalid {name} format: {mask_url(url)}")

    logger.info(
        "Database configuration",
        extra={"extra": {
            "environment": cfg.environment,
            "qdrant_url": mask_url(cfg.qdrant_url),
            "redis_url": mask_url(cfg.redis_url),
            "has_qdrant_api_key": bool(cfg.qdrant_api_key),
        }},
    )

    if cfg.is_production:
        if _is_local(cfg.qdrant_url):
            logger.warning("Using localhost Qdrant URL in production environment")
        if _is_local(cfg.redis_url):
            logger.warning("Using localhost Redis URL in production environment")
        if not cfg.qdrant_api_key and "qdrant.tech" in cfg.qdrant_url:
            logger.warning("Qdrant Cloud URL detected but no API key provided")
