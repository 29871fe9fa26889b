from __future__ import annotations

import json
import logging
import time
from http import client as http_client
from typing import Any, Protocol
from urllib import error, parse, request

from codeshift.conversion.errors import (
    ConfigurationError,
    EmptyInputError,
    MalformedResponseError,
    ProviderError,
)
from codeshift.conversion.models import ConversionResult
from codeshift.conversion.shapes import normalize_payload, strip_code_fences
from codeshift.conversion.tasks import TaskConfig

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class ConversionGateway(Protocol):
    """Interface for turning raw input into a conversion result."""

    def convert(self, input_text: str, task: TaskConfig) -> ConversionResult: ...


class GeminiConversionGateway:
    """Single-attempt adapter for the Gemini ``generateContent`` REST API."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout_s: float = 60.0,
    ) -> None:
        self.api_key = (api_key or "").strip()
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s

    def convert(self, input_text: str, task: TaskConfig) -> ConversionResult:
        if not input_text or not input_text.strip():
            raise EmptyInputError()
        if not self.api_key:
            raise ConfigurationError("Server API Key missing.")

        started_at = time.perf_counter()
        logger.info(
            "conversion event=start task=%s model=%s input_chars=%d",
            task.kind,
            task.model_id,
            len(input_text),
        )
        response_json = self._request(task.model_id, build_request_body(input_text, task))
        text = strip_code_fences(extract_candidate_text(response_json))
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning(
                "conversion event=malformed task=%s model=%s text=%r",
                task.kind,
                task.model_id,
                text[:200],
            )
            raise MalformedResponseError(
                f"Provider returned text that is not valid JSON: {exc.msg}",
                raw_text=text,
            ) from exc
        if not isinstance(parsed, dict):
            raise MalformedResponseError(
                f"Provider returned JSON {type(parsed).__name__}, expected an object",
                raw_text=text,
            )

        result = normalize_payload(parsed, task)
        logger.info(
            "conversion event=completed task=%s model=%s shape=%s items=%d duration_ms=%.2f",
            task.kind,
            task.model_id,
            result.shape,
            len(result.items),
            (time.perf_counter() - started_at) * 1000.0,
        )
        return result

    def _request(self, model_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = (
            f"{self.base_url}/models/{parse.quote(model_id, safe='.-_')}:generateContent"
            f"?key={parse.quote(self.api_key, safe='')}"
        )
        req = request.Request(
            url=url,
            data=json.dumps(payload).encode("utf-8"),
            method="POST",
            headers={"Content-Type": "application/json"},
        )
        try:
            with request.urlopen(req, timeout=self.timeout_s) as response:
                raw = response.read().decode("utf-8")
        except error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="replace")
            message = provider_error_message(_decode_object(body))
            logger.warning(
                "conversion event=provider_error model=%s status=%d message=%s",
                model_id,
                exc.code,
                message,
            )
            raise ProviderError(message, status_code=exc.code) from exc
        except error.URLError as exc:
            logger.warning("conversion event=transport_error model=%s reason=%s", model_id, exc.reason)
            raise ProviderError(f"Provider request failed: {exc.reason}") from exc
        except (OSError, http_client.HTTPException, UnicodeDecodeError) as exc:
            # urllib leaves failures while reading the status line or body unwrapped.
            logger.warning("conversion event=transport_error model=%s reason=%s", model_id, exc)
            raise ProviderError(f"Provider request failed: {exc}") from exc

        response_json = _decode_object(raw)
        if response_json is None:
            raise MalformedResponseError("Provider response body was not a JSON object", raw_text=raw)
        if isinstance(response_json.get("error"), dict):
            raise ProviderError(provider_error_message(response_json))
        return response_json


def build_request_body(input_text: str, task: TaskConfig) -> dict[str, Any]:
    """Provider body; the instruction travels separately from user content."""
    return {
        "contents": [{"parts": [{"text": input_text}]}],
        "systemInstruction": {"parts": [{"text": task.system_instruction}]},
        "generationConfig": {"responseMimeType": "application/json"},
    }


def extract_candidate_text(response_json: dict[str, Any]) -> str:
    """First candidate's first text part, or an empty-object literal."""
    candidates = response_json.get("candidates")
    if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict):
        content = candidates[0].get("content")
        if isinstance(content, dict):
            parts = content.get("parts")
            if isinstance(parts, list) and parts and isinstance(parts[0], dict):
                text = parts[0].get("text")
                if isinstance(text, str) and text:
                    return text
    return "{}"


def provider_error_message(body: dict[str, Any] | None) -> str:
    error_payload = (body or {}).get("error")
    if isinstance(error_payload, dict):
        for key in ("message", "status", "code"):
            value = error_payload.get(key)
            if value:
                return str(value)
    return "API Error"


def build_gateway_from_settings(settings: Any) -> GeminiConversionGateway:
    return GeminiConversionGateway(
        api_key=settings.resolved_gemini_api_key(),
        base_url=settings.llm_base_url,
        timeout_s=settings.llm_timeout_s,
    )


def _decode_object(raw: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None
