"""
LLM-backed config proposer.

Sends the container configuration prompt to an OpenAI-compatible
``/chat/completions`` endpoint and extracts the JSON object from the reply.
The result is returned unvalidated; the resolver validates it.
"""

import asyncio
import json
import re
from typing import Any, Dict, Mapping, Optional

import httpx

from sandbox_runner.domain.languages import code_path_for
from sandbox_runner.domain.ports import ConfigProposalRequest, IConfigProposer
from sandbox_runner.infrastructure.llm.prompts import render_container_config_prompt
from sandbox_runner.infrastructure.logging import get_logger
from sandbox_runner.shared.errors import ConfigurationError, ProposerError

logger = get_logger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Extract the first JSON object from an LLM reply.

    Accepts a fenced code block or a bare object surrounded by prose.

    Raises:
        ConfigurationError: If no JSON object can be parsed
    """
    candidates = [m.group(1).strip() for m in _FENCED_JSON.finditer(text)]
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            return parsed
    raise ConfigurationError(
        "No JSON object found in proposer reply",
        details={"reply_preview": text[:200]},
    )


class HttpConfigProposer(IConfigProposer):
    """
    Config proposer talking to an OpenAI-compatible chat completions API.

    Retries network errors and 5xx responses with exponential backoff.
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        api_key: Optional[str] = None,
        timeout: float = 60.0,
        max_code_chars: int = 2000,
        max_retries: int = 3,
        base_retry_delay: float = 1.0,
        max_retry_delay: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.timeout = httpx.Timeout(timeout, connect=5.0)
        self.max_code_chars = max_code_chars
        self.max_retries = max_retries
        self.base_retry_delay = base_retry_delay
        self.max_retry_delay = max_retry_delay
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _backoff(self, attempt: int) -> None:
        await asyncio.sleep(min(self.base_retry_delay * (2 ** attempt), self.max_retry_delay))

    def _payload(self, request: ConfigProposalRequest) -> Dict[str, Any]:
        prompt = render_container_config_prompt(
            code=request.code,
            language=request.language,
            code_path=code_path_for(request.language),
            detected_packages=request.detected_packages,
            max_code_chars=self.max_code_chars,
        )
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": 0,
        }

    async def propose(self, request: ConfigProposalRequest) -> Mapping[str, Any]:
        url = f"{self.base_url}/chat/completions"
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        payload = self._payload(request)

        last_error: Optional[str] = None
        for attempt in range(self.max_retries):
            try:
                client = await self._get_client()
                logger.debug(
                    "Requesting container config proposal",
                    language=request.language,
                    model=self.model,
                    attempt=attempt + 1,
                )
                response = await client.post(url, json=payload, headers=headers)
            except (httpx.TimeoutException, httpx.NetworkError) as e:
                logger.warning("Proposer request failed - will retry", attempt=attempt + 1, error=str(e))
                last_error = f"{type(e).__name__}: {e}"
                await self._backoff(attempt)
                continue

            if response.status_code >= 500:
                logger.warning(
                    "Proposer server error - will retry",
                    attempt=attempt + 1,
                    status_code=response.status_code,
                )
                last_error = f"Server error ({response.status_code})"
                await self._backoff(attempt)
                continue

            if response.status_code >= 400:
                raise ProposerError(
                    f"Proposer rejected request ({response.status_code}): {response.text[:200]}"
                )

            try:
                content = response.json()["choices"][0]["message"]["content"]
            except (ValueError, KeyError, IndexError, TypeError) as e:
                raise ConfigurationError(
                    "Malformed chat completion response",
                    details={"status_code": response.status_code},
                ) from e
            if not isinstance(content, str):
                raise ConfigurationError("Chat completion response has no text content")

            proposal = extract_json_object(content)
            logger.info(
                "Received container config proposal",
                language=request.language,
                base_image=proposal.get("baseImage"),
            )
            return proposal

        raise ProposerError(f"Proposer unreachable after {self.max_retries} attempts: {last_error}")
