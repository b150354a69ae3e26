import pytest
from fastapi.testclient import TestClient

from rag_core.api.app import create_app
from rag_core.config.settings import settings
from rag_core.domain.exceptions import ExternalServiceError
from rag_core.services.rag_service import RAGService

from .conftest import FakeEmbedder, FakeGenerator


@pytest.fixture
def client(service):
    with TestClient(create_app(service=service, cfg=settings)) as c:
        yield c


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "Server is running"


def test_lifespan_initializes_and_cleans_up(service, vector_store, fake_redis):
    with TestClient(create_app(service=service, cfg=settings)):
        assert vector_store.initialized
    assert vector_store.closed
    assert fake_redis.closed


def test_chat_and_history(client):
    resp = client.post("/api/chat", json={"session_id": "s1", "user_message": "  What is AI?  "})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["session_id"] == "s1"
    assert data["sources"][0]["score"] == 0.9

    history = client.get("/api/chat/history/s1").json()["data"]
    assert history["message_count"] == 2
    assert history["messages"][0]["content"] == "What is AI?"
    assert [m["role"] for m in history["messages"]] == ["user", "assistant"]


def test_chat_validation_error(client):
    resp = client.post("/api/chat", json={"session_id": "s1", "user_message": "   "})
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == "VALIDATION_ERROR"


def test_chat_rejects_long_message(client):
    resp = client.post("/api/chat", json={"session_id": "s1", "user_message": "x" * 4001})
    assert resp.status_code == 400


def test_history_of_unknown_session_is_empty(client):
    data = client.get("/api/chat/history/nobody").json()["data"]
    assert data["messages"] == []
    assert data["message_count"] == 0


def test_clear_history(client):
    client.post("/api/chat", json={"session_id": "s1", "user_message": "hi"})
    resp = client.post("/api/chat/clear/s1")
    assert resp.status_code == 200
    assert resp.json()["data"] == {"session_id": "s1", "cleared": True}

    resp = client.post("/api/chat/clear/s1")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "NOT_FOUND"


def test_search(client):
    resp = client.post("/api/chat/search", json={"query": "AI", "limit": 3, "threshold": 0.5})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["result_count"] == 1
    assert data["results"][0]["id"] == "c1"


def test_search_rejects_out_of_range_limit(client):
    resp = client.post("/api/chat/search", json={"query": "AI", "limit": 50})
    assert resp.status_code == 400


def test_stats(client):
    client.post("/api/chat", json={"session_id": "s1", "user_message": "hi"})
    data = client.get("/api/chat/stats").json()["data"]
    assert data == {"vectorDbCount": 1, "vectorDbStatus": "green", "activeSessions": 1}


def test_unknown_route(client):
    resp = client.get("/api/nope")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "NOT_FOUND"


def test_provider_error_envelope(session_store, vector_store, embedder):
    svc = RAGService(session_store, vector_store, embedder, FakeGenerator(answer=""))
    dev = settings.model_copy(update={"environment": "development"})
    with TestClient(create_app(service=svc, cfg=dev)) as c:
        resp = c.post("/api/chat", json={"session_id": "s1", "user_message": "hi"})
    assert resp.status_code == ExternalServiceError.http_status
    assert resp.json()["error"]["code"] == "EXTERNAL_SERVICE_ERROR"


def test_error_details_hidden_in_production(session_store, vector_store, generator):
    embedder = FakeEmbedder(error=ExternalServiceError("Jina Embeddings API", "down", {"status_code": 503}))
    svc = RAGService(session_store, vector_store, embedder, generator)
    prod = settings.model_copy(update={"environment": "production"})
    with TestClient(create_app(service=svc, cfg=prod)) as c:
        body = c.post("/api/chat", json={"session_id": "s1", "user_message": "hi"}).json()
    assert body["error"]["message"] == "Jina Embeddings API: down"
    assert "details" not in body["error"]

    dev = settings.model_copy(update={"environment": "development"})
    with TestClient(create_app(service=svc, cfg=dev)) as c:
        body = c.post("/api/chat", json={"session_id": "s2", "user_message": "hi"}).json()
    assert body["error"]["details"] == {"status_code": 503}
