"""Translator for the ChatGPT Codex backend."""

import asyncio
import contextlib
import json
from typing import AsyncGenerator, Optional, Tuple

import httpx

from codex_openai_proxy.core.codex_client import CodexClient
from codex_openai_proxy.core.exceptions import MalformedUpstream
from codex_openai_proxy.core.model_router import ModelRouter, ModelSpec
from codex_openai_proxy.core.request_converter import RequestConverter
from codex_openai_proxy.core.response_converter import (
    ChatStreamConverter,
    collect_stream,
    from_backend,
    response_to_chunks,
)
from codex_openai_proxy.models.codex import ResponsesRequest
from codex_openai_proxy.models.openai import ChatCompletionRequest, ChatCompletionResponse
from codex_openai_proxy.utils.logger import get_logger

logger = get_logger(__name__)

# A missing content type is read as an event stream; the decoder rejects anything else
EVENT_STREAM_TYPES = ("", "text/event-stream")


def content_type_of(response: httpx.Response) -> str:
    return response.headers.get("content-type", "").split(";")[0].strip().lower()


class Translator:
    """Chat Completions <-> Codex Responses translation for one backend."""

    def __init__(
        self,
        router: ModelRouter,
        converter: RequestConverter,
        client: CodexClient,
        queue_size: int = 64,
    ):
        self.router = router
        self.converter = converter
        self.client = client
        self.queue_size = queue_size

    def prepare(self, request: ChatCompletionRequest) -> Tuple[ModelSpec, ResponsesRequest]:
        """Resolve the model and build the backend request; raises ModelNotAllowed."""
        spec = self.router.resolve(request.model)
        backend_request = self.converter.to_backend(request, spec)
        logger.info(
            f"Model '{request.model}' -> base={spec.base_model} effort={spec.effort.value} "
            f"({len(backend_request.input)} input items, stream={request.stream})"
        )
        return spec, backend_request

    async def create_chat_completion(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        """
        Create a non-streaming chat completion.

        Args:
            request: OpenAI-style chat completion request

        Returns:
            OpenAI-style chat completion response
        """
        _, backend_request = self.prepare(request)

        async with self.client.new_client() as http:
            response = await self.client.send(http, backend_request.to_payload())
            try:
                content_type = content_type_of(response)
                if content_type in EVENT_STREAM_TYPES:
                    return await collect_stream(response.aiter_text(), request.model)

                body = await response.aread()
                try:
                    data = json.loads(body)
                except ValueError as e:
                    logger.error(f"Unparseable backend body ({content_type}): {body[:200]!r}")
                    raise MalformedUpstream(
                        f"Backend returned an unparseable {content_type or 'response'} body"
                    ) from e
                return from_backend(data, request.model)
            finally:
                await response.aclose()

    async def create_chat_completion_stream(
        self, request: ChatCompletionRequest
    ) -> AsyncGenerator[str, None]:
        """
        Open the backend stream and return a generator of SSE lines.

        Errors detected before any byte is sent to the client (model not
        allowed, rejected credentials, an HTML page instead of an event
        stream) are raised here so they can become a regular error response.
        """
        _, backend_request = self.prepare(request)

        http = self.client.new_client()
        try:
            response = await self.client.send(http, backend_request.to_payload())
        except Exception:
            await http.aclose()
            raise

        content_type = content_type_of(response)
        if content_type in EVENT_STREAM_TYPES:
            return self._relay(http, response, request.model)

        try:
            body = await response.aread()
        finally:
            await response.aclose()
            await http.aclose()

        if content_type == "application/json":
            # Backend ignored the stream flag; replay the whole answer as chunks
            try:
                data = json.loads(body)
            except ValueError as e:
                raise MalformedUpstream("Backend returned an unparseable JSON body") from e
            return self._replay(from_backend(data, request.model))

        logger.error(f"Backend returned {content_type} instead of an event stream: {body[:200]!r}")
        raise MalformedUpstream(f"Backend returned {content_type} instead of an event stream")

    async def _replay(self, response: ChatCompletionResponse) -> AsyncGenerator[str, None]:
        for line in response_to_chunks(response):
            yield line

    async def _relay(
        self, http: httpx.AsyncClient, response: httpx.Response, model: str
    ) -> AsyncGenerator[str, None]:
        """
        Pump backend text through the stream converter into a bounded queue.

        The backend reader runs as its own task so a slow client never stalls
        it beyond the queue size. When the consumer goes away (client
        disconnect) the reader is cancelled and the backend connection closed.
        """
        converter = ChatStreamConverter(model)
        queue: asyncio.Queue[Optional[str]] = asyncio.Queue(maxsize=self.queue_size)

        async def produce() -> None:
            try:
                async for text in response.aiter_text():
                    for line in converter.feed_text(text):
                        await queue.put(line)
                    if converter.state.terminated:
                        break
                for line in converter.close():
                    await queue.put(line)
            except Exception as e:
                logger.error(f"Backend stream aborted: {e}", exc_info=True)
                for line in converter.abort(f"Connection to Codex backend lost: {e}"):
                    await queue.put(line)
            await queue.put(None)

        producer = asyncio.create_task(produce())
        try:
            while True:
                line = await queue.get()
                if line is None:
                    break
                yield line
        finally:
            if not producer.done():
                logger.info(f"Client went away; aborting backend stream {converter.state.response_id}")
                producer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await producer
            await response.aclose()
            await http.aclose()
            logger.info(
                f"Stream {converter.state.response_id} finished in state "
                f"{converter.state.phase.value} ({len(converter.state.accumulated_text)} chars)"
            )
