"""Gemini text-generation client."""

from __future__ import annotations

import hashlib
import json
import re
import time
from typing import Any, Optional
import urllib.error
import urllib.parse
import urllib.request

from buddy.config import AppConfig

_API_URL_TEMPLATE = "{base_url}/{model_path}:generateContent?key={api_key}"


class InferenceError(RuntimeError):
    """The provider produced no usable text."""


class GeminiClient:
    """Send one prompt per call and return the first generated text part.

    There is no retry or backoff: a failed call raises ``InferenceError`` and
    the caller decides what to do with the cycle.
    """

    def __init__(self, config: AppConfig) -> None:
        self._config = config

    def complete(self, prompt: str) -> str:
        config = self._config
        payload = build_payload(prompt)
        url = _build_url(config)
        safe_url = redact_api_key(url)
        prompt_sha = hashlib.sha1(prompt.encode("utf-8")).hexdigest()[:12]
        meta: dict[str, Any] = {"url": safe_url, "prompt_sha": prompt_sha}
        _maybe_log_trace(config, "gemini_request", payload, meta)

        request = urllib.request.Request(
            url,
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )

        try:
            if config.gemini_timeout_sec is None:
                resp_ctx = urllib.request.urlopen(request)
            else:
                resp_ctx = urllib.request.urlopen(
                    request, timeout=config.gemini_timeout_sec
                )
            with resp_ctx as resp:
                status = getattr(resp, "status", None)
                response_body = resp.read()
        except urllib.error.HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace")
            _maybe_log_trace(
                config,
                "gemini_error_response",
                {"error": detail},
                {**meta, "status": exc.code},
            )
            raise InferenceError(f"Gemini API error ({exc.code}): {detail}") from exc
        except urllib.error.URLError as exc:
            _maybe_log_trace(
                config, "gemini_error_connection", {"error": str(exc.reason)}, meta
            )
            raise InferenceError(
                f"Gemini API connection error: {exc.reason}"
            ) from exc
        except OSError as exc:
            _maybe_log_trace(config, "gemini_error_connection", {"error": str(exc)}, meta)
            raise InferenceError(f"Gemini API connection error: {exc}") from exc

        if status is not None and not 200 <= status < 300:
            raise InferenceError(f"Gemini API error ({status}).")

        response_text = response_body.decode("utf-8", errors="replace")
        try:
            response_json = json.loads(response_text)
        except json.JSONDecodeError as exc:
            _maybe_log_trace(
                config,
                "gemini_response_decode_error",
                response_text,
                {**meta, "status": status, "error": str(exc)},
            )
            raise InferenceError(f"Gemini API invalid JSON response: {exc}") from exc

        _maybe_log_trace(config, "gemini_response", response_json, {**meta, "status": status})
        text = extract_text(response_json)
        if text is None:
            raise InferenceError("Gemini response had no candidate text.")
        return text


def build_payload(prompt: str) -> dict[str, Any]:
    return {"contents": [{"parts": [{"text": prompt}]}]}


def extract_text(response_json: Any) -> Optional[str]:
    """Return ``candidates[0].content.parts[0].text`` or None."""

    if not isinstance(response_json, dict):
        return None
    candidates = response_json.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return None
    candidate = candidates[0]
    if not isinstance(candidate, dict):
        return None
    content = candidate.get("content")
    if not isinstance(content, dict):
        return None
    parts = content.get("parts")
    if not isinstance(parts, list) or not parts or not isinstance(parts[0], dict):
        return None
    text = parts[0].get("text")
    if not isinstance(text, str):
        return None
    return text


def redact_api_key(url: str) -> str:
    return re.sub(r"(key=)[^&]+", r"\1***", url)


def _build_url(config: AppConfig) -> str:
    model_path = config.gemini_model.strip()
    if not model_path.startswith("models/"):
        model_path = f"models/{model_path}"
    return _API_URL_TEMPLATE.format(
        base_url=config.gemini_base_url,
        model_path=model_path,
        api_key=urllib.parse.quote(config.gemini_api_key, safe=""),
    )


def _maybe_log_trace(
    config: AppConfig,
    event: str,
    payload: dict[str, Any] | list[Any] | str,
    meta: dict[str, Any],
) -> None:
    if not config.gemini_trace_log:
        return
    ts = time.time()
    header = {"ts": f"{ts:.3f}", "event": event, **meta}
    try:
        with open(config.gemini_trace_log, "a", encoding="utf-8") as handle:
            handle.write(json.dumps(header, ensure_ascii=True) + "\n")
            if isinstance(payload, str):
                handle.write(payload + "\n")
            else:
                handle.write(json.dumps(payload, ensure_ascii=True) + "\n")
    except OSError:
        return
