"""对外 HTTP API。

create_app() 构造 FastAPI 应用；RAGService 在 lifespan 中统一初始化与清理，
整个进程共享同一个实例。直接运行本模块会通过 uvicorn 启动服务。
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from rag_core import __version__
from rag_core.api.errors import register_exception_handlers
from rag_core.api.schemas import ChatRequest, SearchRequest
from rag_core.config.settings import settings
from rag_core.domain.exceptions import NotFoundError
from rag_core.infrastructure.logging.logger import logger
from rag_core.services.rag_service import RAGService, create_rag_service

router = APIRouter()


def get_service(request: Request) -> RAGService:
    return request.app.state.rag_service


def ok(data: Any, **extra: Any) -> Dict[str, Any]:
    return {"success": True, "data": data, **extra}


@router.get("/health")
async def health() -> Dict[str, Any]:
    return {
        "success": True,
        "message": "Server is running",
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "version": __version__,
    }


@router.post("/chat")
async def chat(body: ChatRequest, service: RAGService = Depends(get_service)) -> Dict[str, Any]:
    response = await service.process_query(body.session_id, body.user_message)
    logger.info("Chat response generated", extra={"extra": {"session_id": body.session_id}})
    return ok(response.to_dict())


@router.get("/chat/history/{session_id}")
async def chat_history(session_id: str, service: RAGService = Depends(get_service)) -> Dict[str, Any]:
    messages = await service.get_chat_history(session_id)
    return ok(
        {
            "session_id": session_id,
            "messages": [m.to_dict() for m in messages],
            "message_count": len(messages),
        }
    )


@router.post("/chat/clear/{session_id}")
async def clear_history(session_id: str, service: RAGService = Depends(get_service)) -> Dict[str, Any]:
    if not await service.clear_chat_history(session_id):
        raise NotFoundError(f"Chat session not found: {session_id}")
    logger.info("Chat history cleared", extra={"extra": {"session_id": session_id}})
    return ok({"session_id": session_id, "cleared": True}, message="Chat history cleared successfully")


@router.post("/chat/search")
async def search(body: SearchRequest, service: RAGService = Depends(get_service)) -> Dict[str, Any]:
    results = await service.search_similar_documents(body.query, body.limit, body.threshold)
    return ok(
        {
            "query": body.query,
            "results": [r.to_dict() for r in results],
            "result_count": len(results),
        }
    )


@router.get("/chat/stats")
async def stats(service: RAGService = Depends(get_service)) -> Dict[str, Any]:
    return ok((await service.get_system_stats()).to_dict())


def create_app(service: Optional[RAGService] = None, cfg=settings) -> FastAPI:
    rag_service = service or create_rag_service(cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await rag_service.initialize()
        logger.info("Server started", extra={"extra": {"port": cfg.port, "environment": cfg.environment}})
        try:
            yield
        finally:
            await rag_service.cleanup()
            logger.info("Server stopped")

    app = FastAPI(title="News RAG Chatbot API", version=__version__, lifespan=lifespan)
    app.state.rag_service = rag_service
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[cfg.cors_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app, cfg)
    app.include_router(router, prefix="/api")
    return app


def main() -> None:
    import uvicorn

    from rag_core.config.settings import validate_database_config

    validate_database_config()
    uvicorn.run(create_app(), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
