"""Conversion between the OpenAI wire format and the provider's message form."""

import asyncio
import base64
import binascii
import logging
import math
import os
import re
import time
from typing import List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel

from ..logging.config import get_logger
from ..models.capabilities import DynamicModelCriteria, ModelCapabilities, SortKey
from ..models.context import EnhancedRequestContext
from ..models.interfaces import ChatMessage, ChatRole, DataPart, TextPart
from ..models.requests import ChatCompletionMessage, ChatCompletionRequest
from ..models.responses import (
    AssistantMessage,
    ChatCompletionChoice,
    ChatCompletionResponse,
    ModelList,
    ModelObject,
    ModelPermission,
    TokenUsage,
)


IMAGE_TOKEN_SURCHARGE = 100
SUPPORTED_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp")
IMAGE_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}
VISION_UNSUPPORTED_PLACEHOLDER = "[Image skipped: selected model does not support images]"

_SPECIAL_CHARACTERS = re.compile(r"[\n\r\t]")
_DATA_URI_MIME = re.compile(r"^data:([^;,]+)")

ROLE_PREFIXES = {
    "system": "System: ",
    "user": "",
    "assistant": "Assistant: ",
}


def estimate_tokens(text: str) -> int:
    """Rough token count: a token per four characters plus one per newline or tab."""
    return math.ceil(len(text) / 4) + len(_SPECIAL_CHARACTERS.findall(text))


def estimate_message_tokens(messages: List[ChatCompletionMessage]) -> int:
    total = 0
    for message in messages:
        if isinstance(message.content, str):
            total += estimate_tokens(message.content)
            continue
        for part in message.content:
            if part.type == "text" and part.text:
                total += estimate_tokens(part.text)
            else:
                total += IMAGE_TOKEN_SURCHARGE
    return total


def build_request_context(
    request_id: str,
    request: ChatCompletionRequest,
    client_ip: Optional[str] = None,
    user_agent: Optional[str] = None
) -> EnhancedRequestContext:
    """Derive routing facts from a validated request."""
    return EnhancedRequestContext(
        request_id=request_id,
        model=request.model,
        is_streaming=request.stream,
        has_images=any(message.image_parts for message in request.messages),
        has_functions=any(message.tool_calls for message in request.messages),
        estimated_tokens=estimate_message_tokens(request.messages),
        client_ip=client_ip,
        user_agent=user_agent,
    )


def build_criteria(context: EnhancedRequestContext, request: ChatCompletionRequest) -> DynamicModelCriteria:
    requires_tools = context.has_functions or bool(request.functions) or bool(request.tools)

    required_capabilities = []
    if context.has_images:
        required_capabilities.append("supports_vision")
    if requires_tools:
        required_capabilities.append("supports_tools")
    if context.is_streaming:
        required_capabilities.append("supports_streaming")

    return DynamicModelCriteria(
        preferred_models=[] if request.is_auto_select else [request.model],
        required_capabilities=required_capabilities,
        min_context_tokens=context.estimated_tokens,
        requires_vision=context.has_images,
        requires_tools=requires_tools,
        sort_by=SortKey.CAPABILITIES,
    )


class ResolvedImage(BaseModel):
    """An image reference after resolution; ``data`` is None when only described."""
    description: str
    data: Optional[bytes] = None
    mime_type: Optional[str] = None


class MessageConverter:
    """Turns OpenAI messages into provider messages for one selected model.

    System prompts are sent as user text with a ``System:`` prefix. Images
    become binary parts when the model has vision, placeholder text otherwise.
    Remote images are never fetched.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or get_logger("converter")

    async def convert(self, messages: List[ChatCompletionMessage], model: ModelCapabilities) -> List[ChatMessage]:
        converted = []
        for message in messages:
            converted.append(await self.convert_message(message, model))
        return converted

    async def convert_message(self, message: ChatCompletionMessage, model: ModelCapabilities) -> ChatMessage:
        role = ChatRole.ASSISTANT if message.role == "assistant" else ChatRole.USER
        text = ROLE_PREFIXES[message.role]

        if isinstance(message.content, str):
            return ChatMessage(role=role, content=[TextPart(value=text + message.content)], name=message.name)

        parts: List = []
        for part in message.content:
            if part.type == "text" and part.text:
                text += part.text
            elif part.type == "image_url" and part.image_url is not None:
                if not model.supports_vision:
                    self.logger.warning(f"Model {model.id} does not support vision, skipping image")
                    text += f"\n{VISION_UNSUPPORTED_PLACEHOLDER}\n"
                    continue

                image = await self.resolve_image(part.image_url.url)
                if image is None:
                    continue
                if image.data is not None and image.mime_type:
                    parts.append(DataPart(data=image.data, mime_type=image.mime_type))
                else:
                    text += f"\n[Image: {image.description}]\n"

        if text.strip():
            parts.append(TextPart(value=text))

        return ChatMessage(role=role, content=parts, name=message.name)

    async def resolve_image(self, url: str) -> Optional[ResolvedImage]:
        """Resolve an image reference. Returns None for unusable local paths."""
        if url.startswith("data:image/"):
            return self._decode_data_uri(url)

        if url.startswith("http://") or url.startswith("https://"):
            host = urlparse(url).hostname or "unknown host"
            return ResolvedImage(description=f"Remote image from {host}")

        path = url[len("file://"):] if url.startswith("file://") else url
        if not url.startswith("file://") and not await asyncio.to_thread(os.path.isfile, path):
            self.logger.warning("Local image not found, skipping", extra={"image_path": path})
            return None

        extension = os.path.splitext(path)[1].lower()
        if extension not in SUPPORTED_IMAGE_EXTENSIONS:
            return None

        label = extension[1:]
        try:
            data = await asyncio.to_thread(self._read_file, path)
        except OSError as e:
            self.logger.warning(f"Cannot read local image: {e.strerror}", extra={"image_path": path})
            return ResolvedImage(description=f"Local {label} image (size unknown)")

        return ResolvedImage(
            description=f"Local {label} image ({len(data) / 1024:.1f}KB)",
            data=data,
            mime_type=IMAGE_MIME_TYPES[extension],
        )

    def _decode_data_uri(self, url: str) -> ResolvedImage:
        header, _, payload = url.partition(",")
        match = _DATA_URI_MIME.match(header)
        mime_type = match.group(1) if match else "image/jpeg"

        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError):
            self.logger.warning("Invalid base64 image data", extra={"mime_type": mime_type})
            return ResolvedImage(description=f"Invalid base64 {mime_type} image")

        return ResolvedImage(description=f"Base64 {mime_type} image", data=data, mime_type=mime_type)

    @staticmethod
    def _read_file(path: str) -> bytes:
        with open(path, "rb") as f:
            return f.read()


def system_fingerprint(model: ModelCapabilities) -> str:
    return f"modelbridge-{model.vendor}-{model.family}"


def create_completion_response(
    content: str,
    context: EnhancedRequestContext,
    model: ModelCapabilities
) -> ChatCompletionResponse:
    """Wrap collected text in a non-streaming completion."""
    return ChatCompletionResponse(
        id=f"chatcmpl-{context.request_id}",
        created=int(time.time()),
        model=context.model,
        choices=[
            ChatCompletionChoice(
                index=0,
                message=AssistantMessage(content=content),
                finish_reason="stop",
            )
        ],
        usage=TokenUsage.from_counts(context.estimated_tokens, estimate_tokens(content)),
        system_fingerprint=system_fingerprint(model),
    )


def create_models_response(models: List[ModelCapabilities]) -> ModelList:
    now = int(time.time())
    return ModelList(
        data=[
            ModelObject(
                id=model.id,
                created=now,
                owned_by=model.vendor or "modelbridge",
                permission=[
                    ModelPermission(
                        id=f"perm-{model.id}",
                        created=now,
                        organization=model.vendor or "modelbridge",
                    )
                ],
            )
            for model in models
        ]
    )
