"""
Streaming redaction for server-sent-event chat completions.

Upstream streams arrive as one delta per frame, often a single word. PII
detection on fragments like "123-" misses almost everything, so content
deltas are buffered and redacted in larger units, then re-emitted as
ordinary chat.completion.chunk frames (split, transform, merge).

Flush triggers, checked after every absorbed delta:
- sentence boundary: [.!?] followed by whitespace, or at the end of the buffer
- token budget: estimated tokens (ceil(len/4) per delta) >= max_tokens
- delay: time since the last flush >= max_delay_ms
- timer: max_delay_ms elapsed with no new chunk while text is buffered

Everything that is not a content delta (comments, role-only frames,
finish frames, unparseable data, non-string content) passes through
untouched. Output order always matches input order.
"""

import asyncio
import codecs
import json
import math
import re
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Sequence, Union

import structlog

from pii_proxy.models.pii_models import PiiEntity
from pii_proxy.monitoring.metrics import stream_flushes_total
from pii_proxy.pii.redactor import RedactionService
from pii_proxy.proxy.exceptions import MalformedStreamFrame

logger = structlog.get_logger(__name__)

SENTENCE_BOUNDARY = re.compile(r"[.!?]\s+|[.!?]$")
DATA_PREFIX = "data:"
DONE_MARKER = "[DONE]"
DONE_FRAME = b"data: [DONE]\n\n"
CHARS_PER_TOKEN = 4

EntitiesCallback = Callable[[Sequence[PiiEntity]], Awaitable[None]]


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def _parse_frame(payload: str) -> Any:
    try:
        return json.loads(payload)
    except ValueError as e:
        raise MalformedStreamFrame("Stream data is not valid JSON", details={"payload_length": len(payload)}) from e


@dataclass
class StreamMeta:
    """Envelope fields of the most recent upstream frame."""

    id: Optional[str] = None
    model: Optional[str] = None
    created: Optional[int] = None
    index: int = 0
    role: Optional[str] = None


@dataclass
class _Failure:
    error: BaseException


_END = object()


class StreamRedactionTransformer:
    """
    Re-segments one upstream SSE stream and redacts it flush by flush.

    One instance per upstream response. transform() is the usual entry point
    and applies backpressure through a queue of queue_size frames:

        transformer = StreamRedactionTransformer(redaction_service)
        async for frame in transformer.transform(response.aiter_raw()):
            ...

    feed()/finish() can also be driven directly, with emitted frames read
    back through pending_output(). In that mode output is not bounded,
    since nothing drains it until the caller does.
    """

    def __init__(
        self,
        redactor: RedactionService,
        max_tokens: int = 20,
        max_delay_ms: int = 200,
        on_entities: Optional[EntitiesCallback] = None,
        clock: Callable[[], float] = time.monotonic,
        queue_size: int = 64,
    ):
        self.redactor = redactor
        self.max_tokens = max_tokens
        self.max_delay_ms = max_delay_ms
        self.on_entities = on_entities
        self._clock = clock

        self._buffer = ""
        self._token_estimate = 0
        self._last_flush_at = clock()
        self._carry = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._drop_next_blank = False

        self.meta = StreamMeta()
        self._role_emitted = False

        self._lock = asyncio.Lock()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._timer_tasks: set[asyncio.Task] = set()
        self._failure: Optional[BaseException] = None
        self._closed = False

        self.queue_size = queue_size
        # Unbounded for direct feed()/finish() use; transform() swaps in a bounded one
        self._output: asyncio.Queue = asyncio.Queue()

    # === Public API ===

    async def feed(self, chunk: Union[bytes, str]) -> None:
        """Process one network chunk; complete lines are handled, the rest carried."""
        self._raise_if_failed()
        text = self._decoder.decode(chunk) if isinstance(chunk, bytes) else chunk

        async with self._lock:
            lines = (self._carry + text).split("\n")
            self._carry = lines.pop()
            for line in lines:
                await self._process_line(line.rstrip("\r"))

        self._reschedule_timer()

    async def finish(self) -> None:
        """End of upstream: handle the carried partial line and flush what is left."""
        self._raise_if_failed()
        self._cancel_timer()

        async with self._lock:
            tail = self._carry + self._decoder.decode(b"", final=True)
            self._carry = ""
            if tail:
                await self._process_line(tail.rstrip("\r"))
            await self._flush("eof")

    async def close(self) -> None:
        """Stop the timer and any in-flight timer flush. Idempotent."""
        self._closed = True
        self._cancel_timer()
        for task in list(self._timer_tasks):
            task.cancel()
        if self._timer_tasks:
            await asyncio.gather(*self._timer_tasks, return_exceptions=True)
        self._timer_tasks.clear()

    async def transform(self, source: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        """
        Redact an upstream byte stream, yielding SSE frames.

        Upstream is read by a producer task into the bounded output queue,
        so a slow client stops upstream reads instead of growing memory.
        Closing this iterator cancels the producer and the timer.
        """
        self._output = asyncio.Queue(maxsize=self.queue_size)
        producer = asyncio.create_task(self._pump(source))
        try:
            while True:
                item = await self._output.get()
                if item is _END:
                    break
                if isinstance(item, _Failure):
                    raise item.error
                yield item
        finally:
            if not producer.done():
                producer.cancel()
            await asyncio.gather(producer, return_exceptions=True)
            await self.close()

    def pending_output(self) -> list[bytes]:
        """Drain frames emitted so far (for direct feed()/finish() use)."""
        frames = []
        while not self._output.empty():
            item = self._output.get_nowait()
            if isinstance(item, bytes):
                frames.append(item)
        return frames

    # === Line handling ===

    async def _process_line(self, line: str) -> None:
        if line == "":
            if self._drop_next_blank:
                # The flushed frame already carried its own terminator
                self._drop_next_blank = False
                return
            await self._emit(b"\n")
            return

        self._drop_next_blank = False

        if not line.startswith(DATA_PREFIX):
            await self._emit(f"{line}\n".encode("utf-8"))
            return

        payload = line[len(DATA_PREFIX):].strip()

        if payload == DONE_MARKER:
            await self._flush("done")
            await self._emit(DONE_FRAME)
            self._drop_next_blank = True
            return

        frame = None
        try:
            frame = _parse_frame(payload)
            content = self._extract_content(frame)
        except MalformedStreamFrame as e:
            # Frame goes out verbatim and the stream continues
            logger.warning("Passing through unredactable stream frame", reason=e.message, **e.details)
            await self._passthrough(line, frame)
            return

        if not content:
            await self._passthrough(line, frame)
            return

        self._buffer += content
        self._token_estimate += estimate_tokens(content)
        self._drop_next_blank = True

        trigger = self._flush_trigger()
        if trigger:
            await self._flush(trigger)

    async def _passthrough(self, line: str, frame: Any = None) -> None:
        await self._flush("passthrough")
        if self._frame_role(frame):
            self._role_emitted = True
        await self._emit(f"{line}\n".encode("utf-8"))

    def _extract_content(self, frame: Any) -> str:
        """Capture envelope metadata and return the delta text, or ''."""
        if not isinstance(frame, dict):
            return ""
        choices = frame.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return ""
        choice = choices[0]
        delta = choice.get("delta")

        self.meta = StreamMeta(
            id=frame.get("id", self.meta.id),
            model=frame.get("model", self.meta.model),
            created=frame.get("created", self.meta.created),
            index=choice.get("index", self.meta.index),
            role=self._frame_role(frame) or self.meta.role,
        )

        if not isinstance(delta, dict):
            return ""
        content = delta.get("content")
        if content is None:
            return ""
        if not isinstance(content, str):
            raise MalformedStreamFrame(
                "Unsupported delta content type in stream",
                details={"content_type": type(content).__name__},
            )
        return content

    @staticmethod
    def _frame_role(frame: Any) -> Optional[str]:
        try:
            role = frame["choices"][0]["delta"]["role"]
        except (KeyError, IndexError, TypeError):
            return None
        return role if isinstance(role, str) else None

    def _flush_trigger(self) -> Optional[str]:
        if SENTENCE_BOUNDARY.search(self._buffer):
            return "sentence"
        if self._token_estimate >= self.max_tokens:
            return "tokens"
        if (self._clock() - self._last_flush_at) * 1000 >= self.max_delay_ms:
            return "delay"
        return None

    # === Flushing ===

    async def _flush(self, trigger: str) -> None:
        """Redact the buffer and emit one reframed chunk. Caller holds the lock."""
        if not self._buffer:
            return

        text = self._buffer
        self._buffer = ""
        self._token_estimate = 0
        self._last_flush_at = self._clock()

        result = await self.redactor.redact(text)
        stream_flushes_total.labels(trigger=trigger).inc()

        if self.on_entities is not None and result.entities:
            await self.on_entities(result.entities)

        await self._emit(self._format_frame(result.text))

    def _format_frame(self, text: str) -> bytes:
        delta: dict[str, Any] = {"content": text}
        if self.meta.role and not self._role_emitted:
            delta = {"role": self.meta.role, "content": text}
            self._role_emitted = True

        frame = {
            "id": self.meta.id,
            "object": "chat.completion.chunk",
            "created": self.meta.created,
            "model": self.meta.model,
            "choices": [
                {
                    "index": self.meta.index,
                    "delta": delta,
                    "finish_reason": None,
                }
            ],
        }
        return f"data: {json.dumps(frame, ensure_ascii=False)}\n\n".encode("utf-8")

    async def _emit(self, data: bytes) -> None:
        await self._output.put(data)

    # === Timer ===

    def _reschedule_timer(self) -> None:
        self._cancel_timer()
        if self._buffer and not self._closed:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(self.max_delay_ms / 1000, self._on_timer)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        if self._closed:
            return
        task = asyncio.get_running_loop().create_task(self._timer_flush())
        self._timer_tasks.add(task)
        task.add_done_callback(self._timer_tasks.discard)

    async def _timer_flush(self) -> None:
        try:
            async with self._lock:
                await self._flush("timer")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Timed stream flush failed", error=str(e), error_type=type(e).__name__)
            self._failure = e
            await self._output.put(_Failure(e))

    def _raise_if_failed(self) -> None:
        if self._failure is not None:
            raise self._failure

    # === Producer ===

    async def _pump(self, source: AsyncIterator[bytes]) -> None:
        try:
            async for chunk in source:
                await self.feed(chunk)
            await self.finish()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if e is not self._failure:
                logger.error("Stream redaction aborted", error=str(e), error_type=type(e).__name__)
                await self._output.put(_Failure(e))
            return
        await self._output.put(_END)
