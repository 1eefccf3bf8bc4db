import json
import logging
from collections.abc import AsyncIterator
from time import perf_counter

import httpx
from fastapi.responses import StreamingResponse

from assistant_gateway.metrics import record_stream_events
from assistant_gateway.streaming.events import ErrorEvent, NormalizedEvent
from assistant_gateway.upstream.base import GatewayError

logger = logging.getLogger("aigw.stream")

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def encode_event(event: NormalizedEvent) -> str:
    return f"data: {json.dumps(event.as_wire(), separators=(',', ':'))}\n\n"


class ClientEventEmitter:
    """Write normalized events to the client as SSE frames.

    Every event is yielded as soon as it is produced. Exactly one terminal
    event ends the stream: the source's ``DoneEvent``, or an ``ErrorEvent``
    in its place when the source fails or stops early.
    """

    def __init__(
        self,
        events: AsyncIterator[NormalizedEvent],
        request_id: str,
        mode: str = "tools",
    ) -> None:
        self._events = events
        self._request_id = request_id
        self._mode = mode
        self._started = False

    async def frames(self) -> AsyncIterator[str]:
        if self._started:
            raise RuntimeError("event stream already consumed")
        self._started = True

        started = perf_counter()
        emitted = 0
        closing: ErrorEvent | None = None
        outcome = "done"
        try:
            async for event in self._events:
                emitted += 1
                yield encode_event(event)
                if event.terminal:
                    if isinstance(event, ErrorEvent):
                        outcome = "error"
                    break
            else:
                closing = ErrorEvent(message="AI stream ended unexpectedly")
                outcome = "incomplete"
        except GatewayError as exc:
            closing = ErrorEvent(message=exc.message)
            outcome = exc.code
        except httpx.HTTPError as exc:
            closing = ErrorEvent(message=f"AI request failed: {exc}")
            outcome = "upstream_stream_error"
        except Exception:
            logger.error(
                "chat_stream_failed",
                exc_info=True,
                extra={"request_id": self._request_id, "outcome": "internal_error"},
            )
            closing = ErrorEvent(message="AI request failed")
            outcome = "internal_error"
        finally:
            close = getattr(self._events, "aclose", None)
            if close is not None:
                await close()

        if closing is not None:
            emitted += 1
            yield encode_event(closing)

        record_stream_events(self._mode, outcome, emitted)
        logger.info(
            "chat_stream_completed",
            extra={
                "request_id": self._request_id,
                "mode": self._mode,
                "event_count": emitted,
                "outcome": outcome,
                "latency_ms": int((perf_counter() - started) * 1000),
            },
        )

    def streaming_response(self) -> StreamingResponse:
        return StreamingResponse(
            self.frames(),
            media_type="text/event-stream",
            headers=dict(STREAM_HEADERS),
        )
