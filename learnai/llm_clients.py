from __future__ import annotations

import base64
import dataclasses
import json
import logging
import os
import re
import time
import typing as t
import urllib.error
import urllib.parse
import urllib.request

from .errors import TransportError

logger = logging.getLogger(__name__)

JsonDict = dict[str, t.Any]

OCR_PROMPT = (
    "Extract all text from this image exactly as it appears. "
    "Do not add any commentary or explanation, only return the transcribed text."
)


class TextCompleter(t.Protocol):
    def complete(self, prompt: str) -> str: ...


class TextExtractor(t.Protocol):
    def extract_text(self, data: bytes, mime_type: str) -> str: ...


@dataclasses.dataclass(frozen=True)
class RetryPolicy:
    """How often a failed HTTP call is attempted. One attempt means no retries."""

    max_attempts: int = 1
    backoff_s: float = 2.0
    max_delay_s: float = 65.0

    def delay_for(self, attempt: int, hinted: float | None = None) -> float:
        delay = hinted if hinted is not None else self.backoff_s * float(2 ** attempt)
        return min(self.max_delay_s, max(0.0, delay))

    @staticmethod
    def from_env() -> "RetryPolicy":
        raw = os.environ.get("LLM_MAX_ATTEMPTS") or "1"
        try:
            attempts = int(raw)
        except ValueError:
            attempts = 1
        return RetryPolicy(max_attempts=max(1, attempts))


def _retry_delay_seconds(body_text: str | None) -> float | None:
    if not body_text:
        return None
    try:
        parsed = json.loads(body_text)
    except ValueError:
        parsed = None
    if isinstance(parsed, dict):
        err = parsed.get("error")
        if isinstance(err, dict):
            details = err.get("details")
            if isinstance(details, list):
                for d in details:
                    if not isinstance(d, dict):
                        continue
                    if str(d.get("@type") or "").endswith("RetryInfo") and isinstance(d.get("retryDelay"), str):
                        m = re.search(r"(\d+)\s*s", d["retryDelay"])
                        if m:
                            return float(m.group(1))
    m2 = re.search(r"retry in ([0-9]+(?:\.[0-9]+)?)s", body_text, flags=re.IGNORECASE)
    if m2:
        return float(m2.group(1))
    return None


def _is_retryable(status: int | None) -> bool:
    return status is None or status == 429 or status >= 500


def post_json(
    *,
    url: str,
    payload: JsonDict,
    headers: dict[str, str] | None = None,
    timeout_s: float,
    retry: RetryPolicy,
    service: str,
    sleep: t.Callable[[float], None] = time.sleep,
) -> JsonDict:
    req = urllib.request.Request(
        url,
        data=json.dumps(payload, ensure_ascii=False).encode("utf-8"),
        headers={"Content-Type": "application/json", **(headers or {})},
        method="POST",
    )
    last_error: TransportError | None = None
    for attempt in range(retry.max_attempts):
        hinted: float | None = None
        try:
            with urllib.request.urlopen(req, timeout=timeout_s) as resp:
                raw = resp.read()
            break
        except urllib.error.HTTPError as e:
            try:
                body = e.read().decode("utf-8")
            except (OSError, UnicodeDecodeError):
                body = None
            last_error = TransportError(f"{service} HTTPError {e.code}: {body}", status=e.code)
            last_error.__cause__ = e
            hinted = _retry_delay_seconds(body)
        except (urllib.error.URLError, TimeoutError, OSError) as e:
            last_error = TransportError(f"{service} request failed: {e}")
            last_error.__cause__ = e

        if attempt + 1 >= retry.max_attempts or not _is_retryable(last_error.status):
            raise last_error
        delay = retry.delay_for(attempt, hinted)
        logger.warning("%s call failed (%s); retrying in %.1fs", service, last_error, delay)
        sleep(delay)
    else:
        raise last_error or TransportError(f"{service} request was never attempted")

    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise TransportError(f"{service} returned a non-JSON body: {raw[:500]!r}") from e
    if not isinstance(data, dict):
        raise TransportError(f"{service} returned a JSON {type(data).__name__}, expected an object.")
    return data


class GeminiClient:
    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gemini-2.0-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout_s: float | None = None,
        retry: RetryPolicy | None = None,
    ) -> None:
        self.api_key = api_key or os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")
        if not self.api_key:
            raise TransportError("Missing GEMINI_API_KEY (or GOOGLE_API_KEY).")
        self.model = os.environ.get("GEMINI_MODEL") or model
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s if timeout_s is not None else float(os.environ.get("LLM_TIMEOUT_S") or 120.0)
        self.retry = retry or RetryPolicy.from_env()

    def _generate(self, parts: list[JsonDict], *, temperature: float | None, max_output_tokens: int | None) -> str:
        payload: JsonDict = {"contents": [{"role": "user", "parts": parts}]}
        generation_config: JsonDict = {}
        if temperature is not None:
            generation_config["temperature"] = temperature
        if max_output_tokens is not None:
            generation_config["maxOutputTokens"] = max_output_tokens
        if generation_config:
            payload["generationConfig"] = generation_config

        url = (
            f"{self.base_url}/models/{urllib.parse.quote(self.model)}:generateContent"
            f"?key={urllib.parse.quote(t.cast(str, self.api_key))}"
        )
        data = post_json(url=url, payload=payload, timeout_s=self.timeout_s, retry=self.retry, service="Gemini")

        candidates = data.get("candidates") or []
        if not isinstance(candidates, list) or not candidates:
            raise TransportError("Gemini returned no candidates.")
        content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
        if not isinstance(content, dict):
            raise TransportError("Gemini candidate has no content object.")
        parts = content.get("parts")
        text_parts = [p.get("text") for p in parts if isinstance(p, dict) and p.get("text")] if isinstance(parts, list) else []
        if not text_parts:
            raise TransportError("Gemini returned no text parts.")
        return "\n".join(t.cast(list[str], text_parts)).strip()

    def complete(
        self,
        prompt: str,
        *,
        temperature: float | None = None,
        max_output_tokens: int | None = None,
    ) -> str:
        return self._generate([{"text": prompt}], temperature=temperature, max_output_tokens=max_output_tokens)

    def extract_text(self, data: bytes, mime_type: str) -> str:
        parts: list[JsonDict] = [
            {"text": OCR_PROMPT},
            {"inline_data": {"mime_type": mime_type, "data": base64.b64encode(data).decode("ascii")}},
        ]
        return self._generate(parts, temperature=0.0, max_output_tokens=None)


class GroqClient:
    def __init__(
        self,
        api_key: str | None = None,
        model: str = "openai/gpt-oss-120b",
        base_url: str = "https://api.groq.com/openai/v1",
        timeout_s: float | None = None,
        retry: RetryPolicy | None = None,
        temperature: float = 1.0,
        max_completion_tokens: int = 65536,
    ) -> None:
        self.api_key = api_key or os.environ.get("GROQ_API_KEY")
        if not self.api_key:
            raise TransportError("Groq API key is missing (GROQ_API_KEY).")
        self.model = os.environ.get("GROQ_MODEL") or model
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s if timeout_s is not None else float(os.environ.get("LLM_TIMEOUT_S") or 120.0)
        self.retry = retry or RetryPolicy.from_env()
        self.temperature = temperature
        self.max_completion_tokens = max_completion_tokens

    def complete(self, prompt: str) -> str:
        payload: JsonDict = {
            "messages": [{"role": "user", "content": prompt}],
            "model": self.model,
            "temperature": self.temperature,
            "max_completion_tokens": self.max_completion_tokens,
            "top_p": 1,
            "stream": False,
        }
        data = post_json(
            url=f"{self.base_url}/chat/completions",
            payload=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout_s=self.timeout_s,
            retry=self.retry,
            service="Groq",
        )
        choices = data.get("choices") or []
        message = choices[0].get("message") if choices and isinstance(choices[0], dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise TransportError("Groq response is missing choices[0].message.content.")
        return content


def build_completer(provider: str | None = None) -> TextCompleter:
    name = (provider or os.environ.get("LLM_PROVIDER") or "groq").strip().lower()
    if name == "gemini":
        return GeminiClient()
    if name == "groq":
        return GroqClient()
    raise ValueError(f"Unknown LLM_PROVIDER: {name!r}")
