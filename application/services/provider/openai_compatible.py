"""
OpenAI-compatible provider client.

Opens ``POST {api_url}/chat/completions`` requests with bearer authentication
and exposes the streamed body as a ``DeltaStream`` of text deltas. Knows
nothing about conversations: callers pass an already-built message list.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from application.entity.model_config import ModelConfig
from application.services.provider.delta_stream import DeltaStream
from application.services.streaming.cancellation import (
    CancellationToken,
    run_cancellable,
)
from common.config.config import CANCEL_GRACE_PERIOD, PROVIDER_CONNECT_TIMEOUT
from common.exception import (
    AuthError,
    ConfigurationError,
    HttpError,
    NetworkError,
    ParseError,
    ProviderError,
    StreamTimeoutError,
)

logger = logging.getLogger(__name__)

# Options forwarded verbatim from ModelConfig.provider_options
FORWARDED_OPTIONS = ("temperature", "max_tokens", "top_p")

# Read timeout for the non-streaming completion call
COMPLETION_TIMEOUT = 60.0


class OpenAICompatibleProvider:
    """Provider client for endpoints speaking the OpenAI chat completions protocol."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        grace_period: float = CANCEL_GRACE_PERIOD,
    ):
        self._owns_client = client is None
        # Streams apply their own idle window to the headers and every read
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(None, connect=PROVIDER_CONNECT_TIMEOUT)
        )
        self.grace_period = grace_period

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def open_stream(
        self,
        config: ModelConfig,
        api_key: str,
        messages: List[Dict[str, str]],
        cancel_token: CancellationToken,
        idle_timeout: Optional[float] = None,
    ) -> DeltaStream:
        """Open a streaming completion and return its delta sequence.

        Args:
            config: Model configuration (endpoint, model, options)
            api_key: Bearer secret
            messages: Ordered ``{"role", "content"}`` history
            cancel_token: Observed while connecting and between chunks
            idle_timeout: Max seconds to wait for the response headers and, once
                streaming, between chunks before the stream fails

        Raises:
            OperationCancelled: the token fired before the response arrived
            StreamTimeoutError: no response headers within ``idle_timeout``
            ProviderError: classified connection or status failure
        """
        url = self._completions_url(config)
        body = self._build_body(config, messages, stream=True)
        logger.info(
            f"Sending STREAM request to OpenAI compatible API: {url} "
            f"using model: {body['model']}"
        )

        request = self.client.build_request(
            "POST",
            url,
            json=body,
            headers=self._headers(api_key, accept="text/event-stream"),
        )
        try:
            response = await run_cancellable(
                self._send(request, stream=True), cancel_token, timeout=idle_timeout
            )
        except asyncio.TimeoutError as e:
            logger.error(f"No response headers from {url} within {idle_timeout:g}s")
            raise StreamTimeoutError(idle_timeout) from e

        if not response.is_success:
            await response.aread()
            await response.aclose()
            raise self._status_error(response)

        return DeltaStream(
            response,
            cancel_token,
            idle_timeout=idle_timeout,
            grace_period=self.grace_period,
        )

    async def complete(
        self,
        config: ModelConfig,
        api_key: str,
        messages: List[Dict[str, str]],
        timeout: float = COMPLETION_TIMEOUT,
    ) -> str:
        """Single non-streaming completion; returns the reply text."""
        url = self._completions_url(config)
        body = self._build_body(config, messages, stream=False)
        request = self.client.build_request(
            "POST",
            url,
            json=body,
            headers=self._headers(api_key, accept="application/json"),
            timeout=httpx.Timeout(timeout, connect=PROVIDER_CONNECT_TIMEOUT),
        )
        response = await self._send(request, stream=False)
        if not response.is_success:
            raise self._status_error(response)

        try:
            payload = response.json()
            content = payload["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ParseError(
                f"Unexpected completion response: {response.text[:200]}"
            ) from e
        if not isinstance(content, str):
            raise ParseError("Completion response content is not text")
        return content

    async def _send(self, request: httpx.Request, stream: bool) -> httpx.Response:
        try:
            return await self.client.send(request, stream=stream)
        except httpx.HTTPError as e:
            logger.error(f"Failed to send request to {request.url}: {e}")
            raise NetworkError(f"Failed to reach provider: {e}") from e

    @staticmethod
    def _completions_url(config: ModelConfig) -> str:
        return f"{config.api_url.rstrip('/')}/chat/completions"

    @staticmethod
    def _headers(api_key: str, accept: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {api_key}", "Accept": accept}

    @staticmethod
    def _build_body(
        config: ModelConfig, messages: List[Dict[str, str]], stream: bool
    ) -> Dict[str, Any]:
        model = config.model_name
        if not model:
            raise ConfigurationError(
                f"Model config '{config.name}' has no 'model' in provider_options"
            )
        body: Dict[str, Any] = {"model": model, "messages": messages, "stream": stream}
        for option in FORWARDED_OPTIONS:
            if option in config.provider_options:
                body[option] = config.provider_options[option]
        return body

    @staticmethod
    def _status_error(response: httpx.Response) -> ProviderError:
        status = response.status_code
        detail = _error_detail(response)
        logger.error(f"Provider request failed with status {status}: {detail}")
        if status in (401, 403):
            return AuthError(f"Provider rejected credentials ({status}): {detail}")
        return HttpError(status, f"Provider responded with HTTP {status}: {detail}")


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:500] or "<empty body>"
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        return str(payload["error"].get("message") or payload["error"])
    return str(payload)[:500]
