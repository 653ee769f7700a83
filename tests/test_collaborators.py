"""Gemini client, with the HTTP session faked."""
import pytest
import requests
from requests.adapters import BaseAdapter

from pixelflex.collaborators import DESCRIBE_PROMPT, ENHANCE_PROMPT, GeminiClient
from pixelflex.conversion.errors import EnhancementUnavailable


class FakeResponse:
    def __init__(self, payload=None, status=200):
        self._payload = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if self._payload is None:
            raise ValueError("no JSON")
        return self._payload


class FakeSession:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.exc is not None:
            raise self.exc
        return self.response


def _client(session, api_key="test-key"):
    return GeminiClient(api_key=api_key, base_url="https://example.test/v1beta", session=session)


class TestEnhance:
    def test_returns_inline_image(self):
        session = FakeSession(FakeResponse({
            "candidates": [{"content": {"parts": [
                {"text": "Here you go"},
                {"inlineData": {"mimeType": "image/png", "data": "aGVsbG8="}},
            ]}}],
        }))
        assert _client(session).enhance("data:image/png;base64,AAAA") == "aGVsbG8="
        url, kwargs = session.calls[0]
        assert url == "https://example.test/v1beta/models/gemini-2.5-flash-image:generateContent"
        assert kwargs["headers"] == {"x-goog-api-key": "test-key"}
        assert "params" not in kwargs
        parts = kwargs["json"]["contents"][0]["parts"]
        assert parts[0]["inline_data"]["data"] == "AAAA"
        assert parts[1]["text"] == ENHANCE_PROMPT

    def test_no_image_in_answer_returns_none(self):
        session = FakeSession(FakeResponse({"candidates": [{"content": {"parts": [{"text": "sorry"}]}}]}))
        assert _client(session).enhance("AAAA") is None

    def test_missing_key_is_unavailable_without_network(self):
        session = FakeSession(FakeResponse({}))
        with pytest.raises(EnhancementUnavailable):
            _client(session, api_key="").enhance("AAAA")
        assert session.calls == []

    @pytest.mark.parametrize(
        "session",
        [
            FakeSession(FakeResponse({}, status=429)),
            FakeSession(exc=requests.ConnectionError("offline")),
            FakeSession(FakeResponse(None)),
        ],
    )
    def test_transport_problems_are_unavailable(self, session):
        with pytest.raises(EnhancementUnavailable):
            _client(session).enhance("AAAA")


class ForbiddenAdapter(BaseAdapter):
    """Answers every request with 403, echoing the request URL like a real server response."""

    def send(self, request, **kwargs):
        resp = requests.Response()
        resp.status_code = 403
        resp.reason = "Forbidden"
        resp.url = request.url
        resp.request = request
        resp._content = b'{"error": {"code": 403}}'
        return resp

    def close(self):
        pass


class TestKeyHandling:
    def test_rejected_key_is_not_in_error_message(self):
        session = requests.Session()
        session.mount("https://", ForbiddenAdapter())
        client = GeminiClient(api_key="SECRET-KEY-123", base_url="https://example.test/v1beta", session=session)
        with pytest.raises(EnhancementUnavailable) as exc:
            client.enhance("AAAA")
        assert "403" in exc.value.message
        assert "SECRET-KEY-123" not in exc.value.message
        assert "SECRET-KEY-123" not in str(exc.value.__cause__)


class TestDescribe:
    def test_joins_text_parts(self):
        session = FakeSession(FakeResponse({
            "candidates": [{"content": {"parts": [{"text": "A cat "}, {"text": "on a mat."}]}}],
        }))
        assert _client(session).describe("AAAA") == "A cat on a mat."
        url, kwargs = session.calls[0]
        assert "gemini-3-flash-preview" in url
        assert kwargs["json"]["contents"][0]["parts"][1]["text"] == DESCRIBE_PROMPT

    def test_empty_answer(self):
        session = FakeSession(FakeResponse({"candidates": []}))
        assert _client(session).describe("AAAA") == "Image analyzed."
