"""Capability probing for a single backend model."""

import logging
import time
from datetime import datetime
from typing import Optional

from modelbridge.logging.config import get_logger
from modelbridge.models.capabilities import ModelCapabilities
from modelbridge.models.interfaces import IChatModelHandle


# Identifier substrings of families known to accept images or tools. Unseen
# families are reported as unsupported until added here.
VISION_MODEL_PATTERNS = ("gpt-4o", "gpt-4-turbo", "claude-3", "gemini")
TOOL_MODEL_PATTERNS = ("gpt-4", "gpt-3.5", "claude-3", "gemini")

VISION_IMAGE_FORMATS = ["jpeg", "jpg", "png", "gif", "webp"]
MAX_IMAGES_PER_REQUEST = 10
MAX_IMAGE_SIZE = 20 * 1024 * 1024
DEFAULT_OUTPUT_CAP = 4096


class ModelProbeError(Exception):
    """Raised when a handle's identity cannot be read at all."""

    def __init__(self, message: str, model_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.model_id = model_id


class CapabilityProber:
    """Builds a :class:`ModelCapabilities` record from a model handle.

    Feature tests never fail the probe; a test that raises reports the
    feature as unsupported. Only an unreadable identity is fatal.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or get_logger("discovery.prober")

    async def probe(self, handle: IChatModelHandle) -> ModelCapabilities:
        start_time = time.time()

        try:
            model_id = handle.id
            max_input_tokens = int(handle.max_input_tokens)
        except Exception as e:
            raise ModelProbeError(f"Cannot read model identity: {e}") from e

        name = self._read(handle, "name", model_id)
        family = self._read(handle, "family", "")
        vendor = self._read(handle, "vendor", "")
        version = self._read(handle, "version", "")
        reported_output = self._read(handle, "max_output_tokens", None)

        supports_vision = self._test_feature(model_id, "vision", VISION_MODEL_PATTERNS)
        supports_tools = self._test_feature(model_id, "tools", TOOL_MODEL_PATTERNS)

        max_input_tokens = max(max_input_tokens, 0)
        if reported_output:
            max_output_tokens = min(int(reported_output), max_input_tokens)
        else:
            max_output_tokens = min(int(max_input_tokens * 0.5), DEFAULT_OUTPUT_CAP)

        capabilities = ModelCapabilities(
            id=model_id,
            name=name,
            family=family,
            vendor=vendor,
            version=version,
            max_input_tokens=max_input_tokens,
            max_output_tokens=max_output_tokens,
            context_window=max_input_tokens,
            supports_vision=supports_vision,
            supports_tools=supports_tools,
            supports_function_calling=supports_tools,
            supports_streaming=True,
            supports_multimodal=supports_vision,
            supported_image_formats=list(VISION_IMAGE_FORMATS) if supports_vision else [],
            max_image_size=MAX_IMAGE_SIZE if supports_vision else None,
            max_images_per_request=MAX_IMAGES_PER_REQUEST if supports_vision else None,
            is_healthy=True,
            last_tested_at=datetime.utcnow(),
            response_time=(time.time() - start_time) * 1000,
            success_rate=None,
            handle=handle,
        )

        self.logger.debug(
            f"Probed model {model_id}",
            extra={
                "model_id": model_id,
                "max_input_tokens": max_input_tokens,
                "supports_vision": supports_vision,
                "supports_tools": supports_tools,
            }
        )
        return capabilities

    def _read(self, handle: IChatModelHandle, attribute: str, default):
        try:
            value = getattr(handle, attribute)
        except Exception as e:
            self.logger.debug(f"Handle attribute {attribute} unreadable: {e}")
            return default
        return default if value is None else value

    def _test_feature(self, model_id: str, feature: str, patterns: tuple) -> bool:
        try:
            lowered = model_id.lower()
            return any(pattern in lowered for pattern in patterns)
        except Exception as e:
            self.logger.warning(
                f"{feature} test failed for {model_id}: {e}",
                extra={"model_id": model_id, "feature": feature}
            )
            return False
