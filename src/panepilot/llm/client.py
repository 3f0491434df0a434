"""Streaming HTTP client for the text completion service."""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from http.client import HTTPException
from urllib import request
from urllib.error import HTTPError, URLError

from panepilot.llm.decoder import CompletionResult, StreamDecoder
from panepilot.llm.review import ReviewHook
from panepilot.transcript import TranscriptLog

DEFAULT_API_URL = "http://localhost:8081/v1/completions"
DEFAULT_PARAMS: dict[str, object] = {"n_predict": 384, "temperature": 0.6}
LOGGER = logging.getLogger(__name__)


class CompletionClient:
    """Posts a prompt with ``stream: true`` and decodes the response as it arrives.

    The read loop returns as soon as the decoder has a balanced JSON object or
    sees the caller's stop marker, so the server may keep generating without
    holding up the caller. Transport failures never raise: the partial text is
    returned with ``error`` set.
    """

    def __init__(
        self,
        *,
        api_url: str = DEFAULT_API_URL,
        api_key: str | None = None,
        default_params: dict[str, object] | None = None,
        timeout: float | None = None,
        review_hook: ReviewHook | None = None,
        review_timeout: float = 5.0,
        transcript: TranscriptLog | None = None,
    ) -> None:
        self.api_url = api_url
        self.api_key = api_key
        self.default_params = dict(DEFAULT_PARAMS if default_params is None else default_params)
        self.timeout = timeout
        self.review_hook = review_hook
        self.review_timeout = review_timeout
        self.transcript = transcript

    def complete(
        self,
        prompt: str,
        params: dict[str, object] | None = None,
        *,
        stop_at: str | None = None,
        kind: str = "completion",
        expect_json: bool = True,
    ) -> CompletionResult:
        """Run one streamed completion.

        Free-text requests pass ``expect_json=False`` so braces in the reply do
        not end the read before ``stop_at`` arrives.
        """
        payload = self._build_payload(prompt, params)
        body = json.dumps(payload).encode("utf-8")
        headers = {"Content-Type": "application/json", "Accept": "text/event-stream"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        LOGGER.debug(
            "completion_request_prepared",
            extra={
                "api_url": self.api_url,
                "kind": kind,
                "payload_bytes": len(body),
                "stop_at": stop_at,
            },
        )

        req = request.Request(self.api_url, data=body, headers=headers, method="POST")
        decoder = StreamDecoder(stop_at=stop_at, expect_json=expect_json)
        try:
            with request.urlopen(req, **self._urlopen_kwargs()) as resp:  # noqa: S310
                result = decoder.decode(resp)
        except HTTPError as exc:
            body_excerpt = self._read_error_body_excerpt(exc)
            LOGGER.error(
                "completion_http_error",
                extra={
                    "api_url": self.api_url,
                    "kind": kind,
                    "http_status": exc.code,
                    "reason": exc.reason,
                    "response_excerpt": body_excerpt,
                },
            )
            details = f"Completion request failed with HTTP {exc.code}: {exc.reason}"
            if body_excerpt:
                details = f"{details}. Response body: {body_excerpt}"
            result = decoder.interrupted(details)
        except URLError as exc:
            LOGGER.error(
                "completion_transport_error",
                extra={"api_url": self.api_url, "kind": kind, "reason": str(exc.reason)},
            )
            result = decoder.interrupted(f"Completion transport error: {exc.reason}")
        except TimeoutError:
            LOGGER.error(
                "completion_timeout",
                extra={"api_url": self.api_url, "kind": kind, "timeout_seconds": self.timeout},
            )
            result = decoder.interrupted(f"Completion request timed out after {self.timeout}s")
        except (OSError, HTTPException) as exc:
            LOGGER.error(
                "completion_transport_error",
                extra={"api_url": self.api_url, "kind": kind, "reason": str(exc)},
            )
            result = decoder.interrupted(f"Completion transport error: {exc}")

        if self.transcript is not None:
            self.transcript.record(kind=kind, prompt=prompt, result=result, stop_at=stop_at)
        return self._review(result)

    def _build_payload(self, prompt: str, params: dict[str, object] | None) -> dict[str, object]:
        return {
            **self.default_params,
            **(params or {}),
            "prompt": prompt,
            "stream": True,
        }

    def _urlopen_kwargs(self) -> dict[str, float]:
        if self.timeout is None:
            return {}
        return {"timeout": self.timeout}

    def _review(self, result: CompletionResult) -> CompletionResult:
        if self.review_hook is None or result.json_text is None:
            return result
        original = result.as_object()
        if original is None:
            return result

        edited = self.review_hook.review(
            json.dumps(original, indent=2, ensure_ascii=False),
            self.review_timeout,
        )
        if edited is None:
            return result
        try:
            edited_object = json.loads(edited)
        except json.JSONDecodeError as exc:
            LOGGER.warning("review_edit_invalid_json", extra={"error": str(exc)})
            return result
        if not isinstance(edited_object, dict):
            LOGGER.warning("review_edit_invalid_json", extra={"error": "expected an object"})
            return result

        LOGGER.info("review_edit_applied")
        return replace(result, json_text=json.dumps(edited_object, ensure_ascii=False))

    @staticmethod
    def _read_error_body_excerpt(exc: HTTPError, *, max_chars: int = 500) -> str | None:
        if exc.fp is None:
            return None
        try:
            raw = exc.read()
        except OSError:
            return None

        if not raw:
            return None

        excerpt = raw.decode("utf-8", errors="replace").replace("\n", " ").strip()
        if len(excerpt) > max_chars:
            return f"{excerpt[:max_chars]}..."
        return excerpt
