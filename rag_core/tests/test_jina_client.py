import httpx
import pytest

from rag_core.domain.exceptions import ExternalServiceError
from rag_core.providers.jina_client import JinaEmbeddingClient, normalize_embeddings
from rag_core.services.rag_service import RAGService


class SettingsStub:
    jina_api_key = "jina-test-key-123"
    http_timeout = 1.0
    embedding_model = "jina-embeddings-v2-base-en"
    embedding_base_url = "https://api.jina.ai/v1"
    embedding_max_chars = 20
    embedding_batch_size = 2
    embedding_batch_delay = 0.0
    vector_size = 3


def patch_client(monkeypatch, responder):
    calls = []

    class Client:
        def __init__(self, *a, **kw):
            calls.append({"init": kw})

        async def __aenter__(self):
            return self

        async def __aexit__(self, *a):
            return False

        async def post(self, url, json=None, headers=None):
            calls.append({"url": url, "json": json, "headers": headers})
            return responder(json)

    monkeypatch.setattr("httpx.AsyncClient", Client)
    return calls


def ok_response(payload):
    return httpx.Response(
        200,
        json={"data": [{"index": i, "embedding": [float(i), 0.0, 1.0]} for i in range(len(payload["input"]))]},
    )


@pytest.mark.asyncio
async def test_embed_posts_truncated_input(monkeypatch):
    calls = patch_client(monkeypatch, ok_response)
    client = JinaEmbeddingClient(SettingsStub())

    vectors = await client.embed(["short", "x" * 50])

    assert vectors == [[0.0, 0.0, 1.0], [1.0, 0.0, 1.0]]
    post = calls[-1]
    assert post["url"] == "https://api.jina.ai/v1/embeddings"
    assert post["headers"]["Authorization"] == "Bearer jina-test-key-123"
    assert post["json"]["model"] == "jina-embeddings-v2-base-en"
    assert post["json"]["input"][1] == "x" * 20
    assert calls[0]["init"]["trust_env"] is False


@pytest.mark.asyncio
async def test_embed_empty_input_skips_request(monkeypatch):
    calls = patch_client(monkeypatch, ok_response)
    assert await JinaEmbeddingClient(SettingsStub()).embed([]) == []
    assert calls == []


@pytest.mark.asyncio
async def test_embed_without_key_raises():
    class NoKey(SettingsStub):
        jina_api_key = None

    with pytest.raises(ExternalServiceError) as excinfo:
        await JinaEmbeddingClient(NoKey()).embed(["hi"])
    assert excinfo.value.service == "Jina Embeddings API"
    assert excinfo.value.details == {"code": "MISSING_API_KEY"}


@pytest.mark.asyncio
async def test_embed_http_error_carries_status(monkeypatch):
    patch_client(monkeypatch, lambda payload: httpx.Response(429, json={"detail": "rate limited"}))
    with pytest.raises(ExternalServiceError) as excinfo:
        await JinaEmbeddingClient(SettingsStub()).embed(["hi"])
    err = excinfo.value
    assert err.service == "Jina Embeddings API"
    assert "rate limited" in err.message
    assert err.details == {"status_code": 429}


@pytest.mark.asyncio
async def test_embed_network_error(monkeypatch):
    def boom(payload):
        raise httpx.ConnectError("connection refused")

    patch_client(monkeypatch, boom)
    with pytest.raises(ExternalServiceError) as excinfo:
        await JinaEmbeddingClient(SettingsStub()).embed(["hi"])
    assert excinfo.value.details["status_code"] == 500


@pytest.mark.asyncio
async def test_embed_count_mismatch(monkeypatch):
    patch_client(monkeypatch, lambda payload: httpx.Response(200, json={"embeddings": [[1.0, 2.0, 3.0]]}))
    with pytest.raises(ExternalServiceError):
        await JinaEmbeddingClient(SettingsStub()).embed(["a", "b"])


@pytest.mark.asyncio
async def test_embed_batched_splits_requests(monkeypatch):
    calls = patch_client(monkeypatch, ok_response)
    vectors = await JinaEmbeddingClient(SettingsStub()).embed_batched(["a", "b", "c", "d", "e"])

    posts = [c for c in calls if "url" in c]
    assert [len(p["json"]["input"]) for p in posts] == [2, 2, 1]
    assert len(vectors) == 5


@pytest.mark.asyncio
async def test_embed_one(monkeypatch):
    patch_client(monkeypatch, ok_response)
    assert await JinaEmbeddingClient(SettingsStub()).embed_one("hi") == [0.0, 0.0, 1.0]


def test_normalize_embeddings_orders_by_index():
    data = {"data": [{"index": 1, "embedding": [2.0]}, {"index": 0, "embedding": [1.0]}]}
    assert normalize_embeddings(data) == [[1.0], [2.0]]


def test_normalize_embeddings_rejects_unknown_shape():
    with pytest.raises(ExternalServiceError):
        normalize_embeddings({"result": []})


def test_validate_embedding():
    client = JinaEmbeddingClient(SettingsStub())
    assert client.validate_embedding([0.1, 0.2, 0.3])
    assert not client.validate_embedding([0.1, 0.2])
    assert not client.validate_embedding([0.1, float("nan"), 0.3])


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>gateway</html>"),
        httpx.Response(200, json={"data": [{"index": 0}]}),
        httpx.Response(200, json={"data": [{"index": 0, "embedding": None}]}),
    ],
)
@pytest.mark.asyncio
async def test_embed_malformed_success_body(monkeypatch, response):
    patch_client(monkeypatch, lambda payload: response)
    with pytest.raises(ExternalServiceError) as excinfo:
        await JinaEmbeddingClient(SettingsStub()).embed(["hi"])
    assert excinfo.value.service == "Jina Embeddings API"
    assert excinfo.value.details == {"status_code": 200}


@pytest.mark.asyncio
async def test_malformed_embedding_surfaces_as_provider_error(monkeypatch, session_store, vector_store, generator):
    patch_client(monkeypatch, lambda payload: httpx.Response(200, text="<html>gateway</html>"))
    svc = RAGService(session_store, vector_store, JinaEmbeddingClient(SettingsStub()), generator)
    with pytest.raises(ExternalServiceError) as excinfo:
        await svc.process_query("s1", "What is AI?")
    assert excinfo.value.service == "Jina Embeddings API"
