"""Gemini Provider 适配器。

使用 REST generateContent 端点：
- URL: {base_url}/models/{model}:generateContent
- 认证: x-goog-api-key: <api_key>

只依赖公共字段：contents / generationConfig / safetySettings，
以及响应中的 candidates[].content.parts[].text。
"""

from typing import Any, Dict, List

import httpx

from rag_core.config.settings import settings
from rag_core.domain.exceptions import ExternalServiceError
from rag_core.infrastructure.logging.logger import logger
from rag_core.providers.registry import GEMINI_CONFIG, GEMINI_SAFETY_SETTINGS

SERVICE = GEMINI_CONFIG.service_name


def extract_text(data: Dict[str, Any]) -> str:
    """取第一个候选回答的全部文本片段；被安全策略拦截或无候选时返回空串。"""

    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    content = candidates[0].get("content") or {}
    parts = content.get("parts") or []
    return "".join(p.get("text", "") for p in parts if isinstance(p, dict))


class GeminiClient:
    """Gemini 生成模型客户端实现。"""

    name = "gemini"

    def __init__(self, cfg=settings):
        self._settings = cfg

    async def complete(self, prompt: str) -> str:
        if not getattr(self._settings, "google_api_key", None):
            raise ExternalServiceError(SERVICE, "GOOGLE_API_KEY not configured", {"code": "MISSING_API_KEY"})
        payload = self._build_payload(prompt)
        base = getattr(self._settings, "gemini_base_url", None) or GEMINI_CONFIG.base_url
        try:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = await client.post(
                    f"{base}/models/{self._settings.generation_model}:generateContent",
                    json=payload,
                    headers={
                        "x-goog-api-key": self._settings.google_api_key,
                        "Content-Type": "application/json",
                    },
                )
        except httpx.RequestError as e:
            logger.error("Failed to generate LLM response", extra={"extra": {"error": str(e)}})
            raise ExternalServiceError(SERVICE, str(e), {"status_code": 500})
        if resp.status_code >= 400:
            logger.error(
                "Failed to generate LLM response",
                extra={"extra": {"status_code": resp.status_code, "error": resp.text[:500]}},
            )
            raise ExternalServiceError(SERVICE, self._error_message(resp), {"status_code": resp.status_code})
        try:
            data = resp.json()
            text = extract_text(data)
            block_reason = (data.get("promptFeedback") or {}).get("blockReason")
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error("Invalid LLM response", extra={"extra": {"status_code": resp.status_code, "error": repr(e)}})
            raise ExternalServiceError(SERVICE, f"Invalid response from Gemini API: {e!r}", {"status_code": resp.status_code})
        if not text and block_reason:
            logger.warning("Prompt blocked by safety filter", extra={"extra": {"block_reason": block_reason}})
        return text.strip()

    async def generate_summary(self, text: str, max_length: int = 200) -> str:
        prompt = (
            f"Please provide a concise summary of the following text in approximately {max_length} characters:\n\n"
            f"{text}\n\nSummary:"
        )
        summary = await self.complete(prompt)
        logger.debug("Generated summary", extra={"extra": {"length": len(summary)}})
        return summary

    async def extract_keywords(self, text: str) -> List[str]:
        """提取最多 10 个关键词；失败时返回空列表。"""

        prompt = (
            "Extract the most important keywords and phrases from the following text. "
            f"Return them as a comma-separated list:\n\n{text}\n\nKeywords:"
        )
        try:
            raw = await self.complete(prompt)
        except ExternalServiceError as e:
            logger.error("Failed to extract keywords", extra={"extra": {"error": e.message}})
            return []
        keywords = [k.strip() for k in raw.split(",") if k.strip()]
        return keywords[:10]

    # ---- 辅助方法 ----

    def _build_payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self._settings.generation_temperature,
                "topP": self._settings.generation_top_p,
                "topK": self._settings.generation_top_k,
                "maxOutputTokens": self._settings.generation_max_output_tokens,
            },
            "safetySettings": GEMINI_SAFETY_SETTINGS,
        }

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            return resp.text
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        return resp.text
