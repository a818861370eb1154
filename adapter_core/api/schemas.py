"""Ollama 请求体的 Pydantic 模型（仅用于 HTTP 层校验）。"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class WireFunctionCall(BaseModel):
    name: str
    arguments: Union[Dict[str, Any], str] = Field(default_factory=dict)


class WireToolCall(BaseModel):
    model_config = ConfigDict(extra="allow")

    function: WireFunctionCall


class WireMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: Literal["system", "user", "assistant", "tool"]
    content: Optional[str] = ""
    tool_calls: Optional[List[WireToolCall]] = None


class WireFunction(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    description: str = ""
    parameters: Dict[str, Any] = Field(default_factory=dict)


class WireTool(BaseModel):
    type: str = "function"
    function: WireFunction


class ChatRequestBody(BaseModel):
    model_config = ConfigDict(extra="allow")

    model: Optional[str] = None
    messages: List[WireMessage] = Field(default_factory=list)
    tools: Optional[List[WireTool]] = None
    stream: Optional[bool] = None
    format: Optional[Union[str, Dict[str, Any]]] = None
    options: Optional[Dict[str, Any]] = None


class ShowRequestBody(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    model: Optional[str] = None
