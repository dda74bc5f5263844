"""Translation of provider text fragments into OpenAI SSE chunks."""

import json
import logging
import time
from typing import Any, AsyncIterator, Dict, Optional

from ..logging.config import get_logger
from ..models.capabilities import ModelCapabilities
from ..models.context import EnhancedRequestContext
from ..models.responses import ChatCompletionChunk, ChunkChoice, ChunkDelta
from .converter import system_fingerprint
from .providers.error_handler import to_bridge_error


SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
SSE_MEDIA_TYPE = "text/event-stream"
SSE_DONE = "data: [DONE]\n\n"


def sse_event(data: Dict[str, Any]) -> str:
    return f"data: {json.dumps(data)}\n\n"


def sse_error(message: str, error_type: str = "api_error", code: Optional[str] = None) -> str:
    error: Dict[str, Any] = {"message": message, "type": error_type}
    if code:
        error["code"] = code
    return sse_event({"error": error})


class StreamingTranslator:
    """Emits one chunk per non-empty fragment, then a stop chunk and ``[DONE]``.

    Fragments are forwarded as they arrive. A provider error mid-stream ends
    the stream with a single error event and no ``[DONE]``; content already
    sent stays sent.
    """

    def __init__(
        self,
        context: EnhancedRequestContext,
        model: ModelCapabilities,
        logger: Optional[logging.Logger] = None
    ):
        self.context = context
        self.model = model
        self.logger = logger or get_logger("streaming")
        self.chunk_count = 0
        self.content_length = 0
        self.failed = False
        self._created = int(time.time())

    def create_chunk(self, content: Optional[str], is_first: bool = False, is_last: bool = False) -> ChatCompletionChunk:
        return ChatCompletionChunk(
            id=f"chatcmpl-{self.context.request_id}",
            created=self._created,
            model=self.context.model,
            choices=[
                ChunkChoice(
                    index=0,
                    delta=ChunkDelta(
                        role="assistant" if is_first else None,
                        content=content or None,
                    ),
                    finish_reason="stop" if is_last else None,
                )
            ],
            system_fingerprint=system_fingerprint(self.model),
        )

    async def translate(self, fragments: AsyncIterator[str]) -> AsyncIterator[str]:
        is_first = True
        try:
            async for fragment in fragments:
                if not fragment:
                    continue
                yield sse_event(self.create_chunk(fragment, is_first=is_first).to_wire())
                is_first = False
                self.chunk_count += 1
                self.content_length += len(fragment)
        except Exception as e:
            self.failed = True
            error = to_bridge_error(e)
            self.logger.error(
                f"Stream failed after {self.chunk_count} chunks: {e}",
                extra={"request_id": self.context.request_id, "chunk_count": self.chunk_count},
                exc_info=e
            )
            yield sse_error(error.message, error.error_type, error.code)
            return

        yield sse_event(self.create_chunk(None, is_last=True).to_wire())
        yield SSE_DONE
