"""Validation of raw chat completion request bodies."""

import json
import logging
import re
from typing import Any, Callable, List, Optional

import pydantic

from ..logging.config import get_logger
from ..models.capabilities import ModelCapabilities
from ..models.errors import ErrorCodes, ValidationError
from ..models.requests import AUTO_SELECT_MODEL, ChatCompletionRequest


MAX_MESSAGES_PER_REQUEST = 100
MAX_MESSAGE_LENGTH = 1_000_000
MAX_IMAGES_PER_MESSAGE = 10
MAX_STOP_SEQUENCES = 4
MAX_USER_LENGTH = 256
VALID_ROLES = ("system", "user", "assistant")

IMAGE_URL_PATTERNS = (
    re.compile(r"^data:image/(jpeg|jpg|png|gif|webp);base64,"),
    re.compile(r"^https?://.+\.(jpeg|jpg|png|gif|webp)$", re.IGNORECASE),
    re.compile(r"^file://.+\.(jpeg|jpg|png|gif|webp)$", re.IGNORECASE),
    re.compile(r"^/.+\.(jpeg|jpg|png|gif|webp)$", re.IGNORECASE),
    re.compile(r"^\./.+\.(jpeg|jpg|png|gif|webp)$", re.IGNORECASE),
)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value == value


def _is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def is_valid_image_url(url: str) -> bool:
    return any(pattern.search(url) for pattern in IMAGE_URL_PATTERNS)


class RequestValidator:
    """Checks a decoded request body field by field.

    The first violated constraint raises :class:`ValidationError` whose
    ``param`` is the dotted path of the offending field.
    """

    def __init__(
        self,
        model_lookup: Optional[Callable[[str], Optional[ModelCapabilities]]] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.model_lookup = model_lookup or (lambda model_id: None)
        self.logger = logger or get_logger("validator")

    def validate(self, body: Any) -> ChatCompletionRequest:
        if not isinstance(body, dict):
            raise ValidationError("Request must be a valid JSON object")

        self._validate_messages(body.get("messages"))

        model = self._validate_model(body.get("model"))
        self._validate_stream(body.get("stream"))
        self._validate_range(body.get("temperature"), "temperature", 0, 2)
        self._validate_max_tokens(body.get("max_tokens"), self.model_lookup(model))
        self._validate_n(body.get("n"))
        self._validate_range(body.get("top_p"), "top_p", 0, 1)
        self._validate_stop(body.get("stop"))
        self._validate_range(body.get("presence_penalty"), "presence_penalty", -2, 2)
        self._validate_range(body.get("frequency_penalty"), "frequency_penalty", -2, 2)
        self._validate_user(body.get("user"))

        if body.get("functions") is not None:
            self._validate_functions(body["functions"])
        if body.get("tools") is not None:
            self._validate_tools(body["tools"])

        fields = {key: value for key, value in body.items() if value is not None}
        fields["model"] = model
        try:
            return ChatCompletionRequest.model_validate(fields)
        except pydantic.ValidationError as e:
            error = e.errors()[0]
            param = ".".join(str(part) for part in error["loc"])
            raise ValidationError(f"Invalid value for {param}: {error['msg']}", param=param)

    def _validate_messages(self, messages: Any) -> None:
        if messages is None:
            raise ValidationError("messages is required", param="messages", code=ErrorCodes.MISSING_FIELD)
        if not isinstance(messages, list):
            raise ValidationError("Messages must be an array", param="messages")
        if not messages:
            raise ValidationError("At least one message is required", param="messages")
        if len(messages) > MAX_MESSAGES_PER_REQUEST:
            raise ValidationError(
                f"Too many messages. Maximum {MAX_MESSAGES_PER_REQUEST} allowed",
                param="messages"
            )

        for index, message in enumerate(messages):
            self._validate_message(message, index)

    def _validate_message(self, message: Any, index: int) -> None:
        path = f"messages.{index}"
        if not isinstance(message, dict):
            raise ValidationError(f"Message at index {index} must be an object", param=path)

        role = message.get("role")
        if role not in VALID_ROLES:
            raise ValidationError(
                f"Invalid role \"{role}\" at message {index}. Must be 'system', 'user', or 'assistant'",
                param=f"{path}.role"
            )

        content = message.get("content")
        if isinstance(content, str):
            if len(content) == 0:
                raise ValidationError(f"Message content at index {index} cannot be empty", param=f"{path}.content")
            if len(content) > MAX_MESSAGE_LENGTH:
                raise ValidationError(
                    f"Message content at index {index} is too long. "
                    f"Maximum {MAX_MESSAGE_LENGTH} characters allowed",
                    param=f"{path}.content"
                )
        elif isinstance(content, list):
            self._validate_content_parts(content, index)
        else:
            raise ValidationError(
                f"Message content at index {index} must be a string or array",
                param=f"{path}.content"
            )

        name = message.get("name")
        if name is not None and not isinstance(name, str):
            raise ValidationError(f"Message name at index {index} must be a string", param=f"{path}.name")

        tool_calls = message.get("tool_calls")
        if tool_calls is not None and not isinstance(tool_calls, list):
            raise ValidationError(f"tool_calls at message {index} must be an array", param=f"{path}.tool_calls")

    def _validate_content_parts(self, content: List[Any], message_index: int) -> None:
        path = f"messages.{message_index}.content"
        if not content:
            raise ValidationError(
                f"Multimodal content array at message {message_index} cannot be empty",
                param=path
            )

        image_count = 0
        for i, part in enumerate(content):
            part_path = f"{path}.{i}"
            if not isinstance(part, dict):
                raise ValidationError(
                    f"Content part {i} at message {message_index} must be an object",
                    param=part_path
                )

            part_type = part.get("type")
            if part_type == "text":
                text = part.get("text")
                if not isinstance(text, str) or not text:
                    raise ValidationError(
                        f"Text content part {i} at message {message_index} must have a text field",
                        param=f"{part_path}.text"
                    )

            elif part_type == "image_url":
                image_count += 1
                image_url = part.get("image_url")
                if not isinstance(image_url, dict):
                    raise ValidationError(
                        f"Image content part {i} at message {message_index} must have an image_url object",
                        param=f"{part_path}.image_url"
                    )

                url = image_url.get("url")
                if not isinstance(url, str) or not url:
                    raise ValidationError(
                        f"Image URL at message {message_index}, part {i} is required",
                        param=f"{part_path}.image_url.url"
                    )
                if not is_valid_image_url(url):
                    raise ValidationError(
                        f"Invalid image URL format at message {message_index}, part {i}. "
                        "Supported: base64, HTTP URLs, file paths",
                        param=f"{part_path}.image_url.url"
                    )

            else:
                raise ValidationError(
                    f"Unknown content type \"{part_type}\" at message {message_index}, part {i}",
                    param=f"{part_path}.type"
                )

        if image_count > MAX_IMAGES_PER_MESSAGE:
            raise ValidationError(
                f"Too many images in message {message_index}. "
                f"Maximum {MAX_IMAGES_PER_MESSAGE} images per message",
                param=path
            )

    def _validate_model(self, model: Any) -> str:
        if not model:
            return AUTO_SELECT_MODEL
        if not isinstance(model, str):
            raise ValidationError("Model must be a string", param="model")

        if model != AUTO_SELECT_MODEL and self.model_lookup(model) is None:
            # Unknown ids are routed anyway; selection falls back to the best match
            self.logger.warning(f"Requested model \"{model}\" is not in the current pool", extra={"model_id": model})
        return model

    @staticmethod
    def _validate_stream(stream: Any) -> None:
        if stream is not None and not isinstance(stream, bool):
            raise ValidationError("Stream must be a boolean", param="stream")

    @staticmethod
    def _validate_range(value: Any, name: str, minimum: float, maximum: float) -> None:
        if value is None:
            return
        if not _is_number(value):
            raise ValidationError(f"{name} must be a number", param=name)
        if value < minimum or value > maximum:
            raise ValidationError(f"{name} must be between {minimum} and {maximum}", param=name)

    @staticmethod
    def _validate_n(n: Any) -> None:
        if n is None:
            return
        if not _is_integer(n):
            raise ValidationError("n must be an integer", param="n")
        if n < 1 or n > 10:
            raise ValidationError("n must be between 1 and 10", param="n")

    @staticmethod
    def _validate_stop(stop: Any) -> None:
        if stop is None or isinstance(stop, str):
            return
        if not isinstance(stop, list):
            raise ValidationError("stop must be a string or array of strings", param="stop")
        if len(stop) > MAX_STOP_SEQUENCES:
            raise ValidationError(
                f"stop array cannot have more than {MAX_STOP_SEQUENCES} elements",
                param="stop"
            )
        if not all(isinstance(item, str) for item in stop):
            raise ValidationError("All stop array elements must be strings", param="stop")

    @staticmethod
    def _validate_user(user: Any) -> None:
        if user is None:
            return
        if not isinstance(user, str):
            raise ValidationError("user must be a string", param="user")
        if len(user) > MAX_USER_LENGTH:
            raise ValidationError(f"user string cannot exceed {MAX_USER_LENGTH} characters", param="user")

    @staticmethod
    def _validate_max_tokens(max_tokens: Any, model: Optional[ModelCapabilities]) -> None:
        if max_tokens is None:
            return
        if not _is_integer(max_tokens):
            raise ValidationError("max_tokens must be an integer", param="max_tokens")
        if max_tokens < 1:
            raise ValidationError("max_tokens must be at least 1", param="max_tokens")
        if model is not None:
            check_max_tokens(max_tokens, model)

    @staticmethod
    def _validate_functions(functions: Any) -> None:
        if not isinstance(functions, list):
            raise ValidationError("Functions must be an array", param="functions")

        for index, function in enumerate(functions):
            if not isinstance(function, dict):
                raise ValidationError(f"Function at index {index} must be an object", param=f"functions.{index}")
            if not isinstance(function.get("name"), str) or not function["name"]:
                raise ValidationError(f"Function name at index {index} is required", param=f"functions.{index}.name")
            parameters = function.get("parameters")
            if parameters is not None and not isinstance(parameters, dict):
                raise ValidationError(
                    f"Function parameters at index {index} must be an object",
                    param=f"functions.{index}.parameters"
                )

    @staticmethod
    def _validate_tools(tools: Any) -> None:
        if not isinstance(tools, list):
            raise ValidationError("Tools must be an array", param="tools")

        for index, tool in enumerate(tools):
            if not isinstance(tool, dict):
                raise ValidationError(f"Tool at index {index} must be an object", param=f"tools.{index}")


def check_max_tokens(max_tokens: int, model: ModelCapabilities) -> None:
    """Reject ``max_tokens`` above the model's effective output limit."""
    limit = model.effective_output_limit
    if max_tokens > limit:
        raise ValidationError(
            f"max_tokens cannot exceed {int(limit)} for model {model.id}",
            param="max_tokens"
        )


def parse_json_body(raw: bytes) -> Any:
    """Decode a request body, raising the client-facing error on bad JSON."""
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON in request body", code=ErrorCodes.INVALID_JSON)
