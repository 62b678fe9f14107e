"""Incremental stream decoders for the three wire formats.

Network chunks do not line up with frames, so each connection gets its own
decoder that keeps the unterminated tail of the previous chunk and only
parses a line once its ``\\n`` has arrived.
"""

from __future__ import annotations

import codecs
import json
from typing import Any

from .errors import StreamingError
from .types import StreamChunk, StreamEvent, StreamFinished, TokenUsage


class LineDecoder:
    """Split a byte or text stream into complete lines and decode each one.

    Subclasses implement :meth:`_decode_line` (framing and JSON handling for
    one complete line) and may override :meth:`_end_of_transport`.
    """

    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")()
        self._buffer = ""
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    def feed(self, chunk: bytes | str) -> list[StreamEvent]:
        """Consume one network chunk and return the events it completes."""
        if self._finished:
            return []
        if isinstance(chunk, bytes):
            try:
                chunk = self._utf8.decode(chunk)
            except UnicodeDecodeError as exc:
                raise StreamingError(f"Invalid UTF-8 in stream: {exc}") from exc
        self._buffer += chunk

        events: list[StreamEvent] = []
        while not self._finished:
            newline = self._buffer.find("\n")
            if newline < 0:
                break
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1 :]
            events.extend(self._process_line(line))
        return events

    def close(self) -> list[StreamEvent]:
        """Flush the final unterminated line and apply the end-of-transport rule."""
        if self._finished:
            return []
        try:
            tail = self._buffer + self._utf8.decode(b"", final=True)
        except UnicodeDecodeError as exc:
            raise StreamingError(f"Truncated UTF-8 sequence at end of stream: {exc}") from exc
        self._buffer = ""

        events = self._process_line(tail)
        if not self._finished:
            events.extend(self._end_of_transport())
        return events

    def _process_line(self, line: str) -> list[StreamEvent]:
        if line.endswith("\r"):
            line = line[:-1]
        if not line.strip():
            return []
        try:
            events = self._decode_line(line)
        except (AttributeError, KeyError, IndexError, TypeError, ValueError) as exc:
            raise StreamingError(f"Malformed stream record: {exc!r}") from exc
        for event in events:
            if isinstance(event, StreamFinished):
                self._finished = True
                # Anything after the terminal event is dropped.
                return events[: events.index(event) + 1]
        return events

    def _parse_json(self, text: str) -> Any:
        try:
            return json.loads(text)
        except ValueError as exc:
            raise StreamingError(f"Failed to parse stream record: {exc}") from exc

    def _decode_line(self, line: str) -> list[StreamEvent]:
        raise NotImplementedError

    def _end_of_transport(self) -> list[StreamEvent]:
        raise StreamingError("Stream closed before completion")


class _SSEDecoder(LineDecoder):
    """Shared ``data:`` framing for the server-sent-event backends."""

    def _decode_line(self, line: str) -> list[StreamEvent]:
        if not line.startswith("data:"):
            return []
        data = line[len("data:") :].lstrip(" ")
        if data == "[DONE]":
            return [self._done()]
        record = self._parse_json(data)
        if not isinstance(record, dict):
            raise StreamingError(f"Unexpected stream record: {data}")
        return self._decode_record(record)

    def _done(self) -> StreamFinished:
        return StreamFinished()

    def _decode_record(self, record: dict[str, Any]) -> list[StreamEvent]:
        raise NotImplementedError


class OpenAIStreamDecoder(_SSEDecoder):
    """Chat-completions SSE: ``choices[0].delta.content`` until ``[DONE]``."""

    def __init__(self) -> None:
        super().__init__()
        self._finish_reason: str | None = None
        self._usage: TokenUsage | None = None

    def _done(self) -> StreamFinished:
        return StreamFinished(finish_reason=self._finish_reason, usage=self._usage)

    def _decode_record(self, record: dict[str, Any]) -> list[StreamEvent]:
        if "error" in record:
            raise StreamingError(f"Stream error: {record['error']}")

        usage = record.get("usage")
        if isinstance(usage, dict):
            self._usage = TokenUsage(
                prompt_tokens=int(usage.get("prompt_tokens", 0) or 0),
                completion_tokens=int(usage.get("completion_tokens", 0) or 0),
            )

        choices = record.get("choices") or []
        if not choices:
            return []
        choice = choices[0]
        events: list[StreamEvent] = []
        content = (choice.get("delta") or {}).get("content")
        if content:
            events.append(StreamChunk(content))
        if choice.get("finish_reason"):
            # Hold the terminal event until [DONE] so a trailing usage frame is kept.
            self._finish_reason = choice["finish_reason"]
        return events

    def _end_of_transport(self) -> list[StreamEvent]:
        if self._finish_reason is not None:
            return [StreamFinished(finish_reason=self._finish_reason, usage=self._usage)]
        return super()._end_of_transport()


class AnthropicStreamDecoder(_SSEDecoder):
    """Typed message events; ``event:`` lines are redundant with ``data.type``."""

    def __init__(self) -> None:
        super().__init__()
        self._input_tokens = 0
        self._output_tokens = 0
        self._saw_usage = False
        self._stop_reason: str | None = None

    def _usage(self) -> TokenUsage | None:
        if not self._saw_usage:
            return None
        return TokenUsage(prompt_tokens=self._input_tokens, completion_tokens=self._output_tokens)

    def _absorb_usage(self, usage: Any) -> None:
        if not isinstance(usage, dict):
            return
        if "input_tokens" in usage:
            self._input_tokens = int(usage["input_tokens"] or 0)
            self._saw_usage = True
        if "output_tokens" in usage:
            self._output_tokens = int(usage["output_tokens"] or 0)
            self._saw_usage = True

    def _done(self) -> StreamFinished:
        return StreamFinished(finish_reason=self._stop_reason, usage=self._usage())

    def _decode_record(self, record: dict[str, Any]) -> list[StreamEvent]:
        event_type = record.get("type")
        if event_type == "content_block_delta":
            delta = record.get("delta") or {}
            text = delta.get("text")
            return [StreamChunk(text)] if text else []
        if event_type == "message_start":
            self._absorb_usage((record.get("message") or {}).get("usage"))
            return []
        if event_type == "message_delta":
            self._absorb_usage(record.get("usage"))
            stop_reason = (record.get("delta") or {}).get("stop_reason")
            if stop_reason:
                self._stop_reason = stop_reason
                return [self._done()]
            return []
        if event_type == "message_stop":
            return [self._done()]
        if event_type == "error":
            error = record.get("error") or {}
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise StreamingError(f"Stream error: {message}")
        # ping, content_block_start, content_block_stop
        return []


class OllamaStreamDecoder(LineDecoder):
    """One JSON object per line; no sentinel, so closing the transport ends it."""

    def _decode_line(self, line: str) -> list[StreamEvent]:
        record = self._parse_json(line)
        if not isinstance(record, dict):
            raise StreamingError(f"Unexpected stream record: {line}")
        if record.get("error"):
            raise StreamingError(f"Stream error: {record['error']}")

        events: list[StreamEvent] = []
        content = (record.get("message") or {}).get("content")
        if content:
            events.append(StreamChunk(content))
        if record.get("done"):
            usage = None
            if "prompt_eval_count" in record or "eval_count" in record:
                usage = TokenUsage(
                    prompt_tokens=int(record.get("prompt_eval_count", 0) or 0),
                    completion_tokens=int(record.get("eval_count", 0) or 0),
                )
            events.append(StreamFinished(finish_reason=record.get("done_reason") or "stop", usage=usage))
        return events

    def _end_of_transport(self) -> list[StreamEvent]:
        return [StreamFinished()]
