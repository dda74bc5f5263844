"""OpenAI-compatible request models."""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


AUTO_SELECT_MODEL = "auto-select"


class ImageUrl(BaseModel):
    url: str = Field(..., description="data URI, http(s) URL, file URL or local path")
    detail: Optional[str] = Field(default=None, description="Requested image detail level")


class ContentPart(BaseModel):
    """One part of a multimodal message."""

    type: Literal["text", "image_url"]
    text: Optional[str] = None
    image_url: Optional[ImageUrl] = None


class FunctionCall(BaseModel):
    name: str
    arguments: str = Field("{}", description="JSON-encoded arguments")


class ToolCall(BaseModel):
    """A model-emitted request to run a named tool."""

    id: Optional[str] = None
    type: Literal["function"] = "function"
    function: FunctionCall

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "call_abc123",
            "type": "function",
            "function": {"name": "calculator", "arguments": "{\"expression\": \"2+3*4\"}"}
        }
    })


class ChatCompletionMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: Union[str, List[ContentPart]]
    name: Optional[str] = None
    tool_calls: Optional[List[Dict[str, Any]]] = None
    tool_call_id: Optional[str] = None

    @property
    def image_parts(self) -> List[ContentPart]:
        if isinstance(self.content, str):
            return []
        return [part for part in self.content if part.type == "image_url"]


class FunctionDefinition(BaseModel):
    name: str
    description: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)


class ToolSpec(BaseModel):
    type: str = "function"
    function: Optional[FunctionDefinition] = None


class ChatCompletionRequest(BaseModel):
    """A validated chat completion request."""

    model: str = Field(AUTO_SELECT_MODEL, description="Model id, or auto-select")
    messages: List[ChatCompletionMessage]
    stream: bool = False
    temperature: float = 1.0
    max_tokens: Optional[int] = None
    n: int = 1
    top_p: Optional[float] = None
    stop: Optional[Union[str, List[str]]] = None
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None
    user: Optional[str] = None
    functions: Optional[List[FunctionDefinition]] = None
    function_call: Optional[Any] = None
    tools: Optional[List[ToolSpec]] = None
    tool_choice: Optional[Any] = None

    @property
    def is_auto_select(self) -> bool:
        return self.model == AUTO_SELECT_MODEL

    @property
    def stop_sequences(self) -> Optional[List[str]]:
        if self.stop is None:
            return None
        return [self.stop] if isinstance(self.stop, str) else list(self.stop)

    def requested_functions(self) -> List[FunctionDefinition]:
        """Functions from both the legacy ``functions`` field and ``tools``."""
        functions = list(self.functions or [])
        for tool in self.tools or []:
            if tool.function is not None:
                functions.append(tool.function)
        return functions

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "model": "auto-select",
            "messages": [{"role": "user", "content": "Hello"}],
            "stream": False,
            "temperature": 0.7
        }
    })
