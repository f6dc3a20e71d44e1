"""
Unit tests for the Ethos API client.
"""

import httpx
import pytest
import pytest_asyncio
from httpx import Request, Response

from src.ethos.client import MERGE_PATCH_HEADERS, EthosApiError, EthosClient

BASE_URL = "https://ethos.test"


@pytest_asyncio.fixture
async def client():
    """Ethos client instance."""
    client = EthosClient(base_url=BASE_URL + "/", api_key="key-123", context_token="ctx-456", timeout=5)
    yield client
    await client.close()


def _respond(status, method="GET", path="/v1/x", **kwargs):
    return Response(status, request=Request(method, BASE_URL + path), **kwargs)


class TestEthosApiError:
    """Tests for EthosApiError."""

    def test_to_dict(self):
        """Test error serialization for reports."""
        error = EthosApiError("Forbidden", status=403, method="GET", url="https://ethos.test/v1/x", data={"a": 1})
        data = error.to_dict()

        assert data["error"] == "Forbidden"
        assert data["status"] == 403
        assert data["request"] == {"method": "GET", "url": "https://ethos.test/v1/x"}
        assert data["details"] == {"a": 1}

    def test_to_dict_without_request(self):
        """Test serialization when method/url are unknown."""
        assert EthosApiError("nope").to_dict()["request"] is None


class TestEthosClient:
    """Tests for EthosClient."""

    def test_auth_headers(self, client):
        """Test bearer and context token headers are set."""
        assert client.client.headers["Authorization"] == "Bearer key-123"
        assert client.client.headers["X-Context-Token"] == "ctx-456"
        assert client.base_url == BASE_URL

    @pytest.mark.asyncio
    async def test_get_returns_parsed_json(self, client, monkeypatch):
        """Test successful GET returns the JSON body."""
        async def mock_request(method, url, **kwargs):
            return _respond(200, method, url, json={"hydra:member": [{"id": "a"}]})

        monkeypatch.setattr(client.client, "request", mock_request)

        data = await client.get("/v1/learning_item_enrollments")

        assert data == {"hydra:member": [{"id": "a"}]}

    @pytest.mark.asyncio
    async def test_empty_body_returns_none(self, client, monkeypatch):
        """Test 204 responses parse to None."""
        async def mock_request(method, url, **kwargs):
            return _respond(204, method, url)

        monkeypatch.setattr(client.client, "request", mock_request)

        assert await client.post("/v1/learning_item_enrollments/e1/complete") is None

    @pytest.mark.asyncio
    async def test_hydra_description_becomes_message(self, client, monkeypatch):
        """Test hydra:description is preferred for the error message."""
        body = {"hydra:description": "Item not found", "message": "ignored"}

        async def mock_request(method, url, **kwargs):
            return _respond(404, method, url, json=body)

        monkeypatch.setattr(client.client, "request", mock_request)

        with pytest.raises(EthosApiError) as exc_info:
            await client.get("/v1/x")

        error = exc_info.value
        assert str(error) == "Item not found"
        assert error.status == 404
        assert error.method == "GET"
        assert error.url == BASE_URL + "/v1/x"
        assert error.data == body

    @pytest.mark.asyncio
    async def test_message_then_detail(self, client, monkeypatch):
        """Test message and detail fields are used in order."""
        bodies = iter([{"message": "Bad input"}, {"detail": "Conflict detail"}])

        async def mock_request(method, url, **kwargs):
            return _respond(409, method, url, json=next(bodies))

        monkeypatch.setattr(client.client, "request", mock_request)

        with pytest.raises(EthosApiError, match="Bad input"):
            await client.get("/v1/x")
        with pytest.raises(EthosApiError, match="Conflict detail"):
            await client.get("/v1/x")

    @pytest.mark.asyncio
    async def test_text_body_kept_as_data(self, client, monkeypatch):
        """Test non-JSON error bodies are preserved as text."""
        async def mock_request(method, url, **kwargs):
            return _respond(502, method, url, text="Bad Gateway")

        monkeypatch.setattr(client.client, "request", mock_request)

        with pytest.raises(EthosApiError) as exc_info:
            await client.get("/v1/x")

        assert exc_info.value.status == 502
        assert exc_info.value.data == "Bad Gateway"

    @pytest.mark.asyncio
    async def test_transport_error_has_no_status(self, client, monkeypatch):
        """Test connection failures are normalized."""
        async def mock_request(method, url, **kwargs):
            raise httpx.ConnectError("connection refused", request=Request(method, BASE_URL + url))

        monkeypatch.setattr(client.client, "request", mock_request)

        with pytest.raises(EthosApiError) as exc_info:
            await client.get("/v1/x")

        assert exc_info.value.status is None
        assert exc_info.value.method == "GET"
        assert exc_info.value.url == BASE_URL + "/v1/x"
        assert "connection refused" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_patch_passes_merge_patch_headers(self, client, monkeypatch):
        """Test PATCH forwards body and headers."""
        captured = {}

        async def mock_request(method, url, **kwargs):
            captured.update(kwargs, method=method)
            return _respond(200, method, url, json={"id": "ce1"})

        monkeypatch.setattr(client.client, "request", mock_request)

        await client.patch("/v1/card_enrollments/ce1", {"answer": ["o1"]}, headers=MERGE_PATCH_HEADERS)

        assert captured["method"] == "PATCH"
        assert captured["json"] == {"answer": ["o1"]}
        assert captured["headers"]["Content-Type"] == "application/merge-patch+json"


class TestEthosClientTransport:
    """Tests running real request encoding through a mock transport."""

    @pytest.mark.asyncio
    async def test_repeated_query_params(self):
        """Test list-of-tuples params encode as repeated keys."""
        seen = {}

        def handler(request):
            seen["items"] = request.url.params.get_list("learningItemId[]")
            seen["users"] = request.url.params.get_list("courseEnrollment.userId[]")
            seen["token"] = request.headers["X-Context-Token"]
            return httpx.Response(200, json=[])

        client = EthosClient(BASE_URL, "key", "ctx", transport=httpx.MockTransport(handler))
        async with client:
            await client.get(
                "/v1/learning_item_enrollments",
                params=[("learningItemId[]", "i1"), ("learningItemId[]", "i2"), ("courseEnrollment.userId[]", "u1")],
            )

        assert seen == {"items": ["i1", "i2"], "users": ["u1"], "token": "ctx"}
