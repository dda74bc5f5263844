"""Abstract interfaces for the chat model provider.

The provider is an external capability: it can enumerate chat models and, for
each model handle, accept an ordered message list and return a cancellable
stream of text fragments. Nothing in modelbridge depends on a handle beyond
what is declared here.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class ChatRole(str, Enum):
    """Roles understood by the provider. System prompts are sent as user text."""
    USER = "user"
    ASSISTANT = "assistant"


class TextPart(BaseModel):
    value: str


class DataPart(BaseModel):
    """Binary content such as an image."""
    data: bytes
    mime_type: str


class ChatMessage(BaseModel):
    """A message in the provider's native form."""
    role: ChatRole
    content: List[Union[TextPart, DataPart]] = Field(default_factory=list)
    name: Optional[str] = None

    @property
    def text(self) -> str:
        return "".join(part.value for part in self.content if isinstance(part, TextPart))


class ToolDeclaration(BaseModel):
    """A tool offered to the model: name, description and JSON schema."""
    name: str
    description: str
    input_schema: Dict[str, Any] = Field(default_factory=dict)


class RequestOptions(BaseModel):
    tools: List[ToolDeclaration] = Field(default_factory=list)
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_tokens: Optional[int] = None
    stop: Optional[List[str]] = None
    justification: Optional[str] = None


class CancellationToken:
    """Cooperative cancellation flag shared between a request and its stream."""

    def __init__(self):
        self._cancelled = False

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class ChatModelErrorCode(str, Enum):
    NO_PERMISSIONS = "NoPermissions"
    BLOCKED = "Blocked"
    NOT_FOUND = "NotFound"
    CONTEXT_LENGTH_EXCEEDED = "ContextLengthExceeded"
    UNKNOWN = "Unknown"


class ChatModelError(Exception):
    """Typed error raised by a provider when a request cannot be served."""

    def __init__(self, message: str, code: ChatModelErrorCode = ChatModelErrorCode.UNKNOWN):
        super().__init__(message)
        self.message = message
        self.code = code


class ChatResponseStream(ABC):
    """Response of a chat request. ``text`` yields fragments in emission order."""

    @property
    @abstractmethod
    def text(self) -> AsyncIterator[str]:
        pass


class IChatModelHandle(ABC):
    """Opaque handle to one backend chat model."""

    @property
    @abstractmethod
    def id(self) -> str:
        pass

    @property
    def name(self) -> str:
        return self.id

    @property
    @abstractmethod
    def family(self) -> str:
        pass

    @property
    @abstractmethod
    def vendor(self) -> str:
        pass

    @property
    @abstractmethod
    def version(self) -> str:
        pass

    @property
    @abstractmethod
    def max_input_tokens(self) -> int:
        pass

    @property
    def max_output_tokens(self) -> Optional[int]:
        """Output limit if the provider reports one."""
        return None

    @abstractmethod
    async def send_request(
        self,
        messages: List[ChatMessage],
        options: Optional[RequestOptions] = None,
        cancellation: Optional[CancellationToken] = None
    ) -> ChatResponseStream:
        """Send messages to the model.

        Raises:
            ChatModelError: If the provider refuses the request.
        """
        pass


class IChatModelProvider(ABC):
    """Source of chat model handles."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    async def select_chat_models(self, vendor: Optional[str] = None) -> List[IChatModelHandle]:
        """Enumerate the chat models currently available, optionally for one vendor."""
        pass

    async def close(self) -> None:
        """Release provider resources."""
        return None
