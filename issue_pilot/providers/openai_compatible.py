"""LLM provider for OpenAI-compatible chat-completions APIs.

Works with OpenAI itself and with servers implementing the same API
(vLLM, LM Studio, Ollama's /v1 endpoint, OpenRouter, ...).
"""

import time
from pathlib import Path

import httpx
import structlog

from issue_pilot.exceptions import LLMError
from issue_pilot.providers.base import LLMProvider

log = structlog.get_logger(__name__)


class OpenAICompatibleProvider(LLMProvider):
    """Single-shot prompt -> completion client.

    Optionally writes every raw completion to ``debug_dir`` so that parse
    degradations can be inspected after the fact.
    """

    def __init__(
        self,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o",
        api_key: str | None = None,
        timeout: float = 300.0,
        temperature: float = 0.2,
        debug_dir: str | Path | None = None,
    ):
        """Initialize the provider.

        Args:
            base_url: API base URL (e.g., http://localhost:8000/v1)
            model: Default model identifier
            api_key: Optional API key for authentication
            timeout: Request timeout in seconds
            temperature: Sampling temperature sent with every request
            debug_dir: Directory to dump raw completions into, or None
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        self.temperature = temperature
        self.debug_dir = Path(debug_dir) if debug_dir else None

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self.client = httpx.AsyncClient(timeout=timeout, headers=headers)

    async def close(self) -> None:
        await self.client.aclose()

    async def evaluate(self, model: str, prompt: str, label: str = "") -> str:
        """Send one user message and return the first choice's content."""
        model = model or self.model
        log.info("llm_request", model=model, label=label, prompt_length=len(prompt))

        try:
            response = await self.client.post(
                f"{self.base_url}/chat/completions",
                json={
                    "model": model,
                    "messages": [{"role": "user", "content": prompt}],
                    "temperature": self.temperature,
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            detail = _error_detail(e.response)
            log.error("llm_request_failed", model=model, status_code=e.response.status_code, error=detail)
            raise LLMError(f"Chat completion failed: {detail}", status_code=e.response.status_code, model=model) from e
        except httpx.HTTPError as e:
            log.error("llm_request_failed", model=model, error=str(e))
            raise LLMError(f"Chat completion request error: {e}", model=model) from e

        result = response.json()
        choices = result.get("choices") or []
        if not choices:
            log.error("llm_no_choices", model=model, label=label)
            raise LLMError("No choices returned from API", model=model)

        output = choices[0].get("message", {}).get("content") or ""
        usage = result.get("usage", {})
        log.info(
            "llm_response",
            model=model,
            label=label,
            output_length=len(output),
            tokens=usage.get("total_tokens", usage.get("completion_tokens", 0)),
        )

        self._dump(label, output)
        return output

    def _dump(self, label: str, output: str) -> None:
        """Write a raw completion to the debug directory, if configured."""
        if self.debug_dir is None:
            return

        subdir = self.debug_dir / (label or "completion")
        path = subdir / f"{time.time_ns()}.txt"
        try:
            subdir.mkdir(parents=True, exist_ok=True)
            path.write_text(output, encoding="utf-8")
        except OSError as e:
            log.error("llm_debug_write_failed", path=str(path), error=str(e))
            return

        log.info("llm_response_written", path=str(path))


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return response.text or response.reason_phrase
