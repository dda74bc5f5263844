"""Models package for modelbridge."""

# Capability and pool models
from .capabilities import (
    DynamicModelCriteria,
    ModelCapabilities,
    ModelMetrics,
    ModelPool,
    SortKey,
)

# Request context and tool structures
from .context import (
    EnhancedRequestContext,
    ServerState,
    ToolDefinition,
    ToolMetadata,
    ToolRegistryEntry,
)

# Error models
from .errors import (
    AuthenticationError,
    ErrorCodes,
    ErrorDetail,
    ErrorResponse,
    ErrorTypes,
    InternalServerError,
    MethodNotAllowedError,
    ModelBridgeError,
    NotFoundError,
    PermissionDeniedError,
    ProviderError,
    RateLimitError,
    RequestTimeoutError,
    ServiceUnavailableError,
    ValidationError,
)

# Events
from .events import (
    Event,
    HealthChanged,
    ModelDiscovered,
    PoolRefreshed,
    ToolExecuted,
    ToolFailed,
    ToolRegistered,
)

# Provider interfaces
from .interfaces import (
    CancellationToken,
    ChatMessage,
    ChatModelError,
    ChatModelErrorCode,
    ChatResponseStream,
    ChatRole,
    DataPart,
    IChatModelHandle,
    IChatModelProvider,
    RequestOptions,
    TextPart,
    ToolDeclaration,
)

# Wire models
from .requests import (
    AUTO_SELECT_MODEL,
    ChatCompletionMessage,
    ChatCompletionRequest,
    ContentPart,
    FunctionCall,
    FunctionDefinition,
    ImageUrl,
    ToolCall,
    ToolSpec,
)
from .responses import (
    AssistantMessage,
    ChatCompletionChoice,
    ChatCompletionChunk,
    ChatCompletionResponse,
    ChunkChoice,
    ChunkDelta,
    ModelList,
    ModelObject,
    ModelPermission,
    TokenUsage,
)

__all__ = [
    # Capabilities
    "DynamicModelCriteria",
    "ModelCapabilities",
    "ModelMetrics",
    "ModelPool",
    "SortKey",

    # Context
    "EnhancedRequestContext",
    "ServerState",
    "ToolDefinition",
    "ToolMetadata",
    "ToolRegistryEntry",

    # Errors
    "AuthenticationError",
    "ErrorCodes",
    "ErrorDetail",
    "ErrorResponse",
    "ErrorTypes",
    "InternalServerError",
    "MethodNotAllowedError",
    "ModelBridgeError",
    "NotFoundError",
    "PermissionDeniedError",
    "ProviderError",
    "RateLimitError",
    "RequestTimeoutError",
    "ServiceUnavailableError",
    "ValidationError",

    # Events
    "Event",
    "HealthChanged",
    "ModelDiscovered",
    "PoolRefreshed",
    "ToolExecuted",
    "ToolFailed",
    "ToolRegistered",

    # Provider interfaces
    "CancellationToken",
    "ChatMessage",
    "ChatModelError",
    "ChatModelErrorCode",
    "ChatResponseStream",
    "ChatRole",
    "DataPart",
    "IChatModelHandle",
    "IChatModelProvider",
    "RequestOptions",
    "TextPart",
    "ToolDeclaration",

    # Requests
    "AUTO_SELECT_MODEL",
    "ChatCompletionMessage",
    "ChatCompletionRequest",
    "ContentPart",
    "FunctionCall",
    "FunctionDefinition",
    "ImageUrl",
    "ToolCall",
    "ToolSpec",

    # Responses
    "AssistantMessage",
    "ChatCompletionChoice",
    "ChatCompletionChunk",
    "ChatCompletionResponse",
    "ChunkChoice",
    "ChunkDelta",
    "ModelList",
    "ModelObject",
    "ModelPermission",
    "TokenUsage",
]
