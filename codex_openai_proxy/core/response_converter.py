"""Codex Responses output -> Chat Completions responses and chunks."""

import json
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Set

from codex_openai_proxy.core.exceptions import MalformedUpstream
from codex_openai_proxy.models.openai import (
    ChatCompletionChunk,
    ChatCompletionResponse,
    Choice,
    ChoiceDelta,
    ResponseMessage,
    Usage,
)
from codex_openai_proxy.utils.logger import get_logger

logger = get_logger(__name__)

DONE_LINE = "data: [DONE]\n\n"

TEXT_PART_TYPES = ("output_text", "text")
FUNCTION_CALL = "function_call"

EVENT_TEXT_DELTA = "response.output_text.delta"
EVENT_ITEM_ADDED = "response.output_item.added"
EVENT_ITEM_DONE = "response.output_item.done"
EVENT_ARGUMENTS_DELTA = "response.function_call_arguments.delta"
EVENT_COMPLETED = "response.completed"
EVENT_INCOMPLETE = "response.incomplete"
EVENT_FAILED = "response.failed"
EVENT_ERROR = "error"


def new_completion_id() -> str:
    return f"chatcmpl-{uuid.uuid4().hex}"


def build_chunk(
    completion_id: str,
    created: int,
    model: str,
    delta: Dict[str, Any],
    finish_reason: Optional[str] = None,
) -> Dict[str, Any]:
    """Single-choice chunk as a dict; usage and error are attached by the caller."""
    chunk = ChatCompletionChunk(
        id=completion_id,
        created=created,
        model=model,
        choices=[ChoiceDelta(delta=delta, finish_reason=finish_reason)],
    )
    return chunk.model_dump(exclude={"usage", "error"})


def map_finish_reason(status: Optional[str], has_tool_calls: bool = False) -> str:
    """Map a backend response status to a chat finish reason."""
    if status == "incomplete":
        return "length"
    if has_tool_calls:
        return "tool_calls"
    # 'completed' and anything unrecognized
    return "stop"


def convert_usage(usage: Optional[Dict[str, Any]]) -> Optional[Usage]:
    """Convert Responses API usage to Chat Completions usage."""
    if not isinstance(usage, dict):
        return None
    prompt = usage.get("input_tokens", 0) or 0
    completion = usage.get("output_tokens", 0) or 0
    return Usage(
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=usage.get("total_tokens") or prompt + completion,
    )


def extract_item_text(item: Any) -> str:
    """Text carried by one backend output item."""
    if not isinstance(item, dict):
        return ""
    if item.get("type") in TEXT_PART_TYPES:
        return item.get("text", "") or ""
    if item.get("type") != "message":
        return ""
    return "".join(
        part.get("text", "") or ""
        for part in item.get("content") or []
        if isinstance(part, dict) and part.get("type") in TEXT_PART_TYPES
    )


def convert_tool_call(item: Dict[str, Any]) -> Dict[str, Any]:
    """Chat ``tool_calls`` entry for a backend ``function_call`` item."""
    return {
        "id": item.get("call_id") or item.get("id") or "",
        "type": "function",
        "function": {
            "name": item.get("name") or "",
            "arguments": item.get("arguments") or "",
        },
    }


def extract_tool_calls(output: Any) -> List[Dict[str, Any]]:
    return [
        convert_tool_call(item)
        for item in output or []
        if isinstance(item, dict) and item.get("type") == FUNCTION_CALL
    ]


def unwrap_response(data: Dict[str, Any]) -> Dict[str, Any]:
    """Accept both a bare response object and a {"response": {...}} envelope."""
    inner = data.get("response")
    if isinstance(inner, dict):
        return inner
    return data


def from_backend(data: Any, model: str) -> ChatCompletionResponse:
    """
    Convert a single-shot Responses API response.

    Args:
        data: Parsed backend JSON
        model: Model name to report back to the client

    Returns:
        Chat completion response

    Raises:
        MalformedUpstream: if the payload is not a JSON object
    """
    if not isinstance(data, dict):
        raise MalformedUpstream("Backend returned a non-object JSON payload")

    response = unwrap_response(data)
    output = response.get("output") or []
    text = "".join(extract_item_text(item) for item in output)
    tool_calls = extract_tool_calls(output)
    response_id = response.get("id")

    return ChatCompletionResponse(
        id=f"chatcmpl-{response_id}" if response_id else new_completion_id(),
        created=int(response.get("created_at") or time.time()),
        model=model,
        choices=[
            Choice(
                index=0,
                message=ResponseMessage(content=text, tool_calls=tool_calls or None),
                finish_reason=map_finish_reason(response.get("status"), bool(tool_calls)),
            )
        ],
        usage=convert_usage(response.get("usage")),
    )


@dataclass
class SSERecord:
    """One dispatched server-sent event."""

    data: str
    event: Optional[str] = None


class SSEDecoder:
    """
    Incremental server-sent event decoder.

    Text may be fed in arbitrary pieces; a record is only dispatched once the
    blank line terminating it has arrived. Comment lines (keep-alives) are
    discarded.

    A line that is not an SSE field at all means the backend sent something
    other than an event stream. Decoding stops there: the records completed
    before that line are still returned, and the problem is kept in
    ``error`` for the caller to act on after applying them.
    """

    FIELDS = ("event", "data", "id", "retry")

    def __init__(self) -> None:
        self._buffer = ""
        self._event: Optional[str] = None
        self._data: List[str] = []
        self.error: Optional[MalformedUpstream] = None

    def feed(self, text: str) -> List[SSERecord]:
        if self.error is not None:
            return []
        self._buffer += text
        records: List[SSERecord] = []
        while True:
            newline = self._buffer.find("\n")
            if newline < 0:
                break
            line = self._buffer[:newline].rstrip("\r")
            self._buffer = self._buffer[newline + 1:]
            try:
                record = self._process_line(line)
            except MalformedUpstream as e:
                self.error = e
                self._buffer = ""
                self._event = None
                self._data = []
                break
            if record is not None:
                records.append(record)
        return records

    def close(self) -> List[SSERecord]:
        """Flush at end of stream; unterminated trailing text is dropped."""
        if self.error is not None:
            return []
        if self._buffer.strip():
            logger.debug(f"Discarding {len(self._buffer)} unterminated bytes at end of stream")
        self._buffer = ""
        record = self._dispatch()
        return [record] if record is not None else []

    def _process_line(self, line: str) -> Optional[SSERecord]:
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        name, _, value = line.partition(":")
        if name not in self.FIELDS:
            raise MalformedUpstream(f"Backend did not return an event stream: {line[:120]!r}")
        if value.startswith(" "):
            value = value[1:]

        if name == "event":
            self._event = value
        elif name == "data":
            self._data.append(value)
        return None

    def _dispatch(self) -> Optional[SSERecord]:
        record = None
        if self._data:
            record = SSERecord(data="\n".join(self._data), event=self._event)
        self._event = None
        self._data = []
        return record


class StreamPhase(str, Enum):
    STARTED = "started"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class StreamState:
    """Per-response translation state; never shared between requests."""

    response_id: str
    phase: StreamPhase = StreamPhase.STARTED
    accumulated_text: str = ""
    finish_reason: Optional[str] = None
    usage: Optional[Usage] = None
    error: Optional[str] = None
    delta_items: Set[Optional[str]] = field(default_factory=set)
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)
    tool_call_index: Dict[str, int] = field(default_factory=dict)
    argument_items: Set[str] = field(default_factory=set)
    response: Optional[Dict[str, Any]] = None

    @property
    def terminated(self) -> bool:
        return self.phase in (StreamPhase.COMPLETED, StreamPhase.FAILED)


def format_sse(chunk: Dict[str, Any]) -> str:
    return f"data: {json.dumps(chunk, ensure_ascii=False)}\n\n"


class ChatStreamConverter:
    """
    State machine turning backend events into chat completion chunks.

    STARTED -> STREAMING -> COMPLETED | FAILED. The first parsed event emits
    the assistant role chunk, text deltas are forwarded as they arrive, a
    completion event emits the finish chunk (followed by [DONE]) and any
    failure emits one error chunk and nothing after it.
    """

    def __init__(self, model: str, response_id: Optional[str] = None):
        self.model = model
        self.created = int(time.time())
        self.state = StreamState(response_id=response_id or new_completion_id())
        self.decoder = SSEDecoder()

    # Rendered SSE text, used by the streaming endpoint

    def feed_text(self, text: str) -> List[str]:
        """Decode a piece of backend text and render the resulting chunks."""
        if self.state.terminated:
            return []
        lines: List[str] = []
        for record in self.decoder.feed(text):
            lines.extend(self._render(self.feed(record)))
        if self.decoder.error is not None:
            # No-op when the records above already ended the stream
            lines.extend(self._render(self.fail(self.decoder.error.message)))
        return lines

    def close(self) -> List[str]:
        """Flush the decoder and terminate the stream if the backend didn't."""
        if self.state.terminated:
            return []
        lines: List[str] = []
        for record in self.decoder.close():
            lines.extend(self._render(self.feed(record)))
        lines.extend(self._render(self.finish()))
        return lines

    def abort(self, message: str, code: str = "upstream_error") -> List[str]:
        """Fail the stream from outside (e.g. the backend connection dropped)."""
        return self._render(self.fail(message, code=code))

    def _render(self, chunks: List[Dict[str, Any]]) -> List[str]:
        lines = [format_sse(chunk) for chunk in chunks]
        if chunks and self.state.phase is StreamPhase.COMPLETED:
            lines.append(DONE_LINE)
        return lines

    # Chunk dicts

    def feed(self, record: SSERecord) -> List[Dict[str, Any]]:
        """Apply one backend event; returns the chunks it produces."""
        state = self.state
        if state.terminated:
            return []

        if record.data.strip() == "[DONE]":
            return self._open() + self._complete(None)

        try:
            payload = json.loads(record.data)
        except ValueError:
            return self.fail(f"Unparseable event payload: {record.data[:120]!r}")
        if not isinstance(payload, dict):
            return self.fail("Event payload is not a JSON object")

        event_type = payload.get("type") or record.event

        if event_type in (EVENT_ERROR, EVENT_FAILED):
            return self.fail(self._error_message(payload))

        if state.phase is StreamPhase.STARTED:
            response = payload.get("response")
            if isinstance(response, dict) and response.get("id"):
                state.response_id = f"chatcmpl-{response['id']}"
        chunks = self._open()

        if event_type == EVENT_TEXT_DELTA:
            delta = payload.get("delta")
            if isinstance(delta, str) and delta:
                state.delta_items.add(payload.get("item_id"))
                state.accumulated_text += delta
                chunks.append(self._chunk({"content": delta}))
        elif event_type == EVENT_ITEM_ADDED:
            chunks.extend(self._tool_call_added(payload.get("item")))
        elif event_type == EVENT_ARGUMENTS_DELTA:
            chunks.extend(self._arguments_delta(payload.get("item_id"), payload.get("delta")))
        elif event_type == EVENT_ITEM_DONE:
            chunks.extend(self._item_done(payload.get("item")))
        elif event_type in (EVENT_COMPLETED, EVENT_INCOMPLETE):
            response = payload.get("response")
            if not isinstance(response, dict):
                response = {}
            status = response.get("status")
            if event_type == EVENT_INCOMPLETE:
                status = "incomplete"
            state.response = response
            state.usage = convert_usage(response.get("usage"))
            chunks.extend(self._complete(status))
        else:
            logger.debug(f"Ignoring backend event type '{event_type}'")

        return chunks

    def fail(self, message: str, code: str = "malformed_upstream") -> List[Dict[str, Any]]:
        """Enter FAILED and produce the single error chunk."""
        state = self.state
        if state.terminated:
            return []
        delta: Dict[str, Any] = {"content": f"Error: {message}"}
        if state.phase is StreamPhase.STARTED:
            delta = {"role": "assistant", **delta}
        logger.error(f"Stream {state.response_id} failed: {message}")
        state.phase = StreamPhase.FAILED
        state.finish_reason = "error"
        state.error = message
        chunk = self._chunk(delta, finish_reason="stop")
        chunk["error"] = {"message": message, "type": "upstream_error", "code": code}
        return [chunk]

    def finish(self) -> List[Dict[str, Any]]:
        """Backend stream ended; anything not yet terminal is a failure."""
        if self.state.terminated:
            return []
        return self.fail("upstream stream ended before completion", code="upstream_error")

    def _open(self) -> List[Dict[str, Any]]:
        if self.state.phase is not StreamPhase.STARTED:
            return []
        self.state.phase = StreamPhase.STREAMING
        return [self._chunk({"role": "assistant", "content": ""})]

    def _complete(self, status: Optional[str]) -> List[Dict[str, Any]]:
        state = self.state
        state.phase = StreamPhase.COMPLETED
        state.finish_reason = map_finish_reason(status, bool(state.tool_calls))
        chunk = self._chunk({}, finish_reason=state.finish_reason)
        if state.usage is not None:
            chunk["usage"] = state.usage.model_dump()
        return [chunk]

    def _item_done(self, item: Any) -> List[Dict[str, Any]]:
        # Only used when the item's text never arrived as deltas
        state = self.state
        if not isinstance(item, dict):
            return []
        if item.get("type") == FUNCTION_CALL:
            return self._tool_call_done(item)
        if None in state.delta_items or item.get("id") in state.delta_items:
            return []
        text = extract_item_text(item)
        if not text:
            return []
        state.accumulated_text += text
        return [self._chunk({"content": text})]

    # Tool calls

    def _tool_call_added(self, item: Any) -> List[Dict[str, Any]]:
        if not isinstance(item, dict) or item.get("type") != FUNCTION_CALL:
            return []
        return self._start_tool_call(item)

    def _start_tool_call(self, item: Dict[str, Any]) -> List[Dict[str, Any]]:
        state = self.state
        call = convert_tool_call(item)
        index = len(state.tool_calls)
        state.tool_calls.append(call)
        if item.get("id"):
            state.tool_call_index[item["id"]] = index
        return [self._chunk({
            "tool_calls": [{
                "index": index,
                "id": call["id"],
                "type": "function",
                "function": dict(call["function"]),
            }]
        })]

    def _arguments_delta(self, item_id: Optional[str], delta: Any) -> List[Dict[str, Any]]:
        state = self.state
        if not isinstance(delta, str) or not delta:
            return []
        index = state.tool_call_index.get(item_id) if item_id else None
        if index is None:
            logger.debug(f"Ignoring arguments for unannounced tool call '{item_id}'")
            return []
        state.tool_calls[index]["function"]["arguments"] += delta
        state.argument_items.add(item_id)
        return [self._arguments_chunk(index, delta)]

    def _tool_call_done(self, item: Dict[str, Any]) -> List[Dict[str, Any]]:
        # Announces calls never seen as 'added'; sends arguments that never streamed
        state = self.state
        item_id = item.get("id")
        index = state.tool_call_index.get(item_id) if item_id else None
        if index is None:
            return self._start_tool_call(item)
        function = state.tool_calls[index]["function"]
        arguments = item.get("arguments") or ""
        if item_id in state.argument_items or function["arguments"] or not arguments:
            return []
        function["arguments"] = arguments
        return [self._arguments_chunk(index, arguments)]

    def _arguments_chunk(self, index: int, arguments: str) -> Dict[str, Any]:
        return self._chunk({"tool_calls": [{"index": index, "function": {"arguments": arguments}}]})

    def _chunk(self, delta: Dict[str, Any], finish_reason: Optional[str] = None) -> Dict[str, Any]:
        return build_chunk(self.state.response_id, self.created, self.model, delta, finish_reason)

    @staticmethod
    def _error_message(payload: Dict[str, Any]) -> str:
        error = payload.get("error")
        if not isinstance(error, dict):
            response = payload.get("response")
            if isinstance(response, dict):
                error = response.get("error")
        if isinstance(error, dict):
            return error.get("message") or error.get("code") or "unknown backend error"
        return payload.get("message") or payload.get("code") or "unknown backend error"


def response_to_chunks(response: ChatCompletionResponse) -> List[str]:
    """Replay a complete response as a role / content / finish chunk stream."""
    choice = response.choices[0]

    def chunk(delta: Dict[str, Any], finish_reason: Optional[str] = None) -> str:
        return format_sse(build_chunk(response.id, response.created, response.model, delta, finish_reason))

    lines = [chunk({"role": "assistant", "content": ""})]
    if choice.message.content:
        lines.append(chunk({"content": choice.message.content}))
    if choice.message.tool_calls:
        lines.append(chunk({
            "tool_calls": [{"index": i, **call} for i, call in enumerate(choice.message.tool_calls)]
        }))
    lines.append(chunk({}, finish_reason=choice.finish_reason or "stop"))
    lines.append(DONE_LINE)
    return lines


async def collect_stream(chunks: AsyncIterator[str], model: str) -> ChatCompletionResponse:
    """
    Build a single chat completion from a backend event stream.

    The Codex backend answers with an event stream even when the client did
    not ask for one; the same state machine runs and its deltas are joined.
    A completed answer with no text (e.g. only tool calls) is still a
    success and gets empty content.

    Raises:
        MalformedUpstream: if the stream fails
    """
    converter = ChatStreamConverter(model)
    async for text in chunks:
        converter.feed_text(text)
        if converter.state.terminated:
            break
    converter.close()

    state = converter.state
    if state.phase is StreamPhase.FAILED:
        raise MalformedUpstream(state.error or "Backend stream failed")

    output = (state.response or {}).get("output") or []
    text = state.accumulated_text or "".join(extract_item_text(item) for item in output)
    tool_calls = state.tool_calls or extract_tool_calls(output)
    finish_reason = state.finish_reason or "stop"
    if tool_calls and finish_reason == "stop":
        finish_reason = "tool_calls"
    if not text and not tool_calls:
        logger.warning(f"Backend response {state.response_id} completed without assistant content")

    return ChatCompletionResponse(
        id=state.response_id,
        created=converter.created,
        model=model,
        choices=[
            Choice(
                index=0,
                message=ResponseMessage(content=text, tool_calls=tool_calls or None),
                finish_reason=finish_reason,
            )
        ],
        usage=state.usage,
    )
