from __future__ import annotations

import io
import json
import threading
from collections.abc import Iterator
from http import client as http_client
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib import error

import pytest

import codeshift.conversion.gateway as gateway_module
from codeshift.conversion.errors import (
    ConfigurationError,
    EmptyInputError,
    MalformedResponseError,
    ProviderError,
)
from codeshift.conversion.gateway import GeminiConversionGateway, build_request_body
from codeshift.conversion.tasks import CSS_TO_TAILWIND

PAIRS_JSON = json.dumps(
    {
        "conversions": [{"selector": ".box", "tailwind": "bg-red-500 p-4"}],
        "analysis": "One selector converted.",
    }
)


class _FakeResponse:
    def __init__(self, body: str) -> None:
        self._body = body.encode("utf-8")

    def read(self) -> bytes:
        return self._body

    def __enter__(self) -> _FakeResponse:
        return self

    def __exit__(self, *_exc: Any) -> None:
        return None


def _candidate(text: str) -> str:
    return json.dumps({"candidates": [{"content": {"parts": [{"text": text}]}}]})


def _install_urlopen(monkeypatch: pytest.MonkeyPatch, body: str) -> list[Any]:
    calls: list[Any] = []

    def fake_urlopen(req: Any, timeout: float) -> _FakeResponse:
        calls.append((req, timeout))
        return _FakeResponse(body)

    monkeypatch.setattr(gateway_module.request, "urlopen", fake_urlopen)
    return calls


def _install_http_error(monkeypatch: pytest.MonkeyPatch, status: int, body: str) -> None:
    def fake_urlopen(req: Any, timeout: float) -> _FakeResponse:
        raise error.HTTPError(req.full_url, status, "error", None, io.BytesIO(body.encode("utf-8")))

    monkeypatch.setattr(gateway_module.request, "urlopen", fake_urlopen)


def test_empty_input_fails_without_network_call(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _install_urlopen(monkeypatch, _candidate(PAIRS_JSON))
    gateway = GeminiConversionGateway(api_key="k")

    for text in ("", "   \n\t"):
        with pytest.raises(EmptyInputError) as exc_info:
            gateway.convert(text, CSS_TO_TAILWIND)
        assert exc_info.value.display() == "No input provided"

    assert calls == []


def test_missing_api_key_is_configuration_error(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _install_urlopen(monkeypatch, _candidate(PAIRS_JSON))

    with pytest.raises(ConfigurationError) as exc_info:
        GeminiConversionGateway(api_key="  ").convert(".a { color: red; }", CSS_TO_TAILWIND)

    assert exc_info.value.display() == "Server misconfigured: Server API Key missing."
    assert calls == []


def test_successful_conversion_makes_exactly_one_request(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _install_urlopen(monkeypatch, _candidate(PAIRS_JSON))
    gateway = GeminiConversionGateway(api_key="secret", base_url="https://example.test/v1beta/", timeout_s=5)

    result = gateway.convert(".box { background: red; padding: 1rem; }", CSS_TO_TAILWIND)

    assert len(calls) == 1
    req, timeout = calls[0]
    assert timeout == 5
    assert req.get_method() == "POST"
    assert req.full_url == (
        "https://example.test/v1beta/models/gemini-2.5-flash:generateContent?key=secret"
    )
    assert json.loads(req.data.decode("utf-8")) == build_request_body(
        ".box { background: red; padding: 1rem; }", CSS_TO_TAILWIND
    )
    assert result.shape == "pairs"
    assert result.analysis == "One selector converted."
    assert [item.to_payload() for item in result.items] == [
        {"selector": ".box", "tailwind": "bg-red-500 p-4"}
    ]


def test_request_body_keeps_instruction_out_of_user_content() -> None:
    body = build_request_body(".a{}", CSS_TO_TAILWIND)

    assert body["contents"] == [{"parts": [{"text": ".a{}"}]}]
    assert body["systemInstruction"]["parts"][0]["text"] == CSS_TO_TAILWIND.system_instruction
    assert body["generationConfig"] == {"responseMimeType": "application/json"}


def test_fenced_reply_matches_unfenced_reply(monkeypatch: pytest.MonkeyPatch) -> None:
    gateway = GeminiConversionGateway(api_key="k")

    _install_urlopen(monkeypatch, _candidate(PAIRS_JSON))
    plain = gateway.convert(".box{}", CSS_TO_TAILWIND)

    _install_urlopen(monkeypatch, _candidate(f"```json\n{PAIRS_JSON}\n```"))
    fenced = gateway.convert(".box{}", CSS_TO_TAILWIND)

    assert fenced == plain


def test_provider_error_uses_error_message(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_http_error(monkeypatch, 400, json.dumps({"error": {"message": "API key not valid"}}))

    with pytest.raises(ProviderError) as exc_info:
        GeminiConversionGateway(api_key="k").convert(".a{}", CSS_TO_TAILWIND)

    assert exc_info.value.message == "API key not valid"
    assert exc_info.value.status_code == 400
    assert exc_info.value.display() == "AI Service Failed: API key not valid"


def test_provider_error_falls_back_to_status_then_generic(monkeypatch: pytest.MonkeyPatch) -> None:
    gateway = GeminiConversionGateway(api_key="k")

    _install_http_error(monkeypatch, 429, json.dumps({"error": {"status": "RESOURCE_EXHAUSTED"}}))
    with pytest.raises(ProviderError) as exc_info:
        gateway.convert(".a{}", CSS_TO_TAILWIND)
    assert exc_info.value.message == "RESOURCE_EXHAUSTED"

    _install_http_error(monkeypatch, 502, "<html>Bad Gateway</html>")
    with pytest.raises(ProviderError) as exc_info:
        gateway.convert(".a{}", CSS_TO_TAILWIND)
    assert exc_info.value.message == "API Error"
    assert exc_info.value.status_code == 502


def test_transport_failure_is_provider_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_urlopen(req: Any, timeout: float) -> _FakeResponse:
        raise error.URLError("connection refused")

    monkeypatch.setattr(gateway_module.request, "urlopen", fake_urlopen)

    with pytest.raises(ProviderError) as exc_info:
        GeminiConversionGateway(api_key="k").convert(".a{}", CSS_TO_TAILWIND)

    assert "connection refused" in str(exc_info.value)
    assert exc_info.value.status_code is None


def test_error_payload_in_success_body_is_provider_error(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_urlopen(monkeypatch, json.dumps({"error": {"code": 503}}))

    with pytest.raises(ProviderError) as exc_info:
        GeminiConversionGateway(api_key="k").convert(".a{}", CSS_TO_TAILWIND)

    assert exc_info.value.message == "503"


def test_candidate_text_that_is_not_json_is_malformed(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_urlopen(monkeypatch, _candidate("Sure! Here are your classes: p-4"))

    with pytest.raises(MalformedResponseError) as exc_info:
        GeminiConversionGateway(api_key="k").convert(".a{}", CSS_TO_TAILWIND)

    assert exc_info.value.raw_text == "Sure! Here are your classes: p-4"
    assert exc_info.value.display().startswith("AI Service Failed:")


def test_candidate_json_array_is_malformed(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_urlopen(monkeypatch, _candidate('[{"selector": ".a", "tailwind": "p-4"}]'))

    with pytest.raises(MalformedResponseError):
        GeminiConversionGateway(api_key="k").convert(".a{}", CSS_TO_TAILWIND)


def test_missing_candidates_yield_empty_result(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_urlopen(monkeypatch, json.dumps({"candidates": []}))

    result = GeminiConversionGateway(api_key="k").convert(".a{}", CSS_TO_TAILWIND)

    assert result.items == []
    assert result.analysis == ""
    assert result.shape == "open"


@pytest.fixture
def silent_provider() -> Iterator[str]:
    """Local endpoint that accepts the request and never sends a status line."""
    release = threading.Event()

    class _Handler(BaseHTTPRequestHandler):
        def do_POST(self) -> None:
            self.rfile.read(int(self.headers.get("Content-Length", 0)))
            release.wait(5.0)

        def log_message(self, *_args: Any) -> None:
            return None

    try:
        server = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    except PermissionError:
        pytest.skip("Socket operations are blocked in this environment.")
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}/v1beta"
    finally:
        release.set()
        server.shutdown()
        server.server_close()


def test_read_timeout_is_provider_error(silent_provider: str, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("no_proxy", "127.0.0.1,localhost")
    monkeypatch.setenv("NO_PROXY", "127.0.0.1,localhost")
    gateway = GeminiConversionGateway(api_key="k", base_url=silent_provider, timeout_s=0.5)

    with pytest.raises(ProviderError) as exc_info:
        gateway.convert(".a{}", CSS_TO_TAILWIND)

    assert str(exc_info.value).startswith("Provider request failed:")
    assert exc_info.value.status_code is None


def test_dropped_connection_is_provider_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_urlopen(req: Any, timeout: float) -> _FakeResponse:
        raise http_client.RemoteDisconnected("Remote end closed connection without response")

    monkeypatch.setattr(gateway_module.request, "urlopen", fake_urlopen)

    with pytest.raises(ProviderError) as exc_info:
        GeminiConversionGateway(api_key="k").convert(".a{}", CSS_TO_TAILWIND)

    assert "Remote end closed connection" in str(exc_info.value)


def test_undecodable_body_is_provider_error(monkeypatch: pytest.MonkeyPatch) -> None:
    class _BinaryResponse(_FakeResponse):
        def read(self) -> bytes:
            return b"\xff\xfe\x00garbage"

    monkeypatch.setattr(gateway_module.request, "urlopen", lambda req, timeout: _BinaryResponse(""))

    with pytest.raises(ProviderError):
        GeminiConversionGateway(api_key="k").convert(".a{}", CSS_TO_TAILWIND)
