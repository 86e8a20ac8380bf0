"""Server-Sent Events decoding for OpenAI-compatible chat completion streams."""

import json
import logging
from typing import Any, List, NamedTuple, Optional

from common.exception import HttpError, ParseError

logger = logging.getLogger(__name__)

DONE_MARKER = "[DONE]"


class ParsedChunk(NamedTuple):
    """Result of decoding one ``data:`` payload."""

    delta: Optional[str]
    done: bool = False


class SSEDecoder:
    """Incremental SSE decoder.

    Text is fed in arbitrary slices; complete events are returned as the joined
    value of their ``data:`` lines. Comments and non-data fields are ignored.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._data_lines: List[str] = []

    def feed(self, text: str) -> List[str]:
        self._buffer += text
        payloads = []
        while True:
            newline = self._buffer.find("\n")
            if newline < 0:
                break
            line = self._buffer[:newline].rstrip("\r")
            self._buffer = self._buffer[newline + 1 :]
            payload = self._process_line(line)
            if payload is not None:
                payloads.append(payload)
        return payloads

    def flush(self) -> Optional[str]:
        """Dispatch whatever is left once the body has ended."""
        if self._buffer:
            line, self._buffer = self._buffer.rstrip("\r"), ""
            self._process_line(line)
        return self._dispatch()

    def _process_line(self, line: str) -> Optional[str]:
        if line == "":
            return self._dispatch()
        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "data":
            self._data_lines.append(value)
        return None

    def _dispatch(self) -> Optional[str]:
        if not self._data_lines:
            return None
        payload = "\n".join(self._data_lines)
        self._data_lines = []
        return payload


def parse_chunk(data: str) -> ParsedChunk:
    """Decode one stream payload into a text delta or the terminal marker.

    Raises:
        ParseError: payload is not JSON or does not look like a completion chunk
        HttpError: the provider reported an error inside the stream
    """
    data = data.strip()
    if data == DONE_MARKER:
        return ParsedChunk(delta=None, done=True)

    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        raise ParseError(f"Failed to parse stream chunk as JSON: {data[:200]}") from e

    if not isinstance(payload, dict):
        raise ParseError(f"Stream chunk is not a JSON object: {data[:200]}")

    if payload.get("type") == "ping":
        logger.debug("Received stream ping event, skipping")
        return ParsedChunk(delta=None)

    if "error" in payload:
        raise _stream_error(payload["error"])

    choices = payload.get("choices")
    if not isinstance(choices, list):
        raise ParseError(f"Stream chunk has no 'choices' list: {data[:200]}")
    if not choices:
        # usage-only chunks carry an empty choices list
        return ParsedChunk(delta=None)

    first = choices[0]
    delta = first.get("delta") if isinstance(first, dict) else None
    if delta is None:
        return ParsedChunk(delta=None)
    if not isinstance(delta, dict):
        raise ParseError(f"Stream chunk has a malformed delta: {data[:200]}")

    content = delta.get("content")
    if content is None:
        return ParsedChunk(delta=None)
    if not isinstance(content, str):
        raise ParseError(f"Stream chunk content is not text: {data[:200]}")
    return ParsedChunk(delta=content)


def _stream_error(error: Any) -> HttpError:
    if isinstance(error, dict):
        message = error.get("message") or json.dumps(error)
        code = error.get("code")
        status = code if isinstance(code, int) else 502
    else:
        message, status = str(error), 502
    return HttpError(status, f"Provider reported an error mid-stream: {message}")
