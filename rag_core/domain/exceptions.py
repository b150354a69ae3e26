"""统一业务异常模型。

所有跨模块抛出的业务级错误都继承自 AppError，
API 层据此统一映射为 HTTP 状态码与错误信封。
"""

from typing import Any, Optional


class AppError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "VALIDATION_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时使用的状态码。
        details: 补充信息（上游状态码、原始错误等），仅在开发环境对外暴露。
    """

    code = "INTERNAL_SERVER_ERROR"
    http_status = 500

    def __init__(self, message: str, details: Optional[Any] = None, *, code: Optional[str] = None):
        self.message = message
        self.details = details
        if code:
            self.code = code
        super().__init__(message)


class ValidationError(AppError):
    """参数或配置校验失败，在进入编排器之前拒绝。"""

    code = "VALIDATION_ERROR"
    http_status = 400


class NotFoundError(AppError):
    """会话或文档不存在。"""

    code = "NOT_FOUND"
    http_status = 404


class InternalServerError(AppError):
    """编排层内部错误，例如文档与向量数量不一致。"""

    code = "INTERNAL_SERVER_ERROR"
    http_status = 500


class ExternalServiceError(AppError):
    """Embedding / 向量库 / 生成模型调用失败或返回不可用结果。

    message 渲染为 "{service}: {message}"，service 保留为属性便于日志统计。
    """

    code = "EXTERNAL_SERVICE_ERROR"
    http_status = 502

    def __init__(self, service: str, message: str, details: Optional[Any] = None):
        self.service = service
        super().__init__(f"{service}: {message}", details)
