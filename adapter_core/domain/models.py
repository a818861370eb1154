"""统一的对话与决策数据模型。

本模块定义了适配层内部共享的标准数据结构：

- ConversationMessage: 一条对话消息（system/user/assistant/tool）。
- ToolDefinition / ToolParameter: 调用方随请求提供的工具目录。
- UnifiedResponse: 响应引擎的唯一输出类型（tool_call / answer / chat 三选一）。
- ExchangeResult: 会话通信层一次交换的结果。

HTTP 层与后端客户端都只依赖这些模型，
并各自负责在外部 JSON 与这些模型之间做转换。
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Literal, Optional, Tuple, Union

# 工具参数等开放结构统一使用递归 JSON 值类型
JsonValue = Union[str, int, float, bool, None, List["JsonValue"], Dict[str, "JsonValue"]]
JsonObject = Dict[str, JsonValue]

# 消息角色类型（与 Ollama 的 role 字段对应）
Role = Literal["system", "user", "assistant", "tool"]

Action = Literal["tool_call", "answer", "chat"]


@dataclass(frozen=True)
class ToolCall:
    """assistant 消息中记录的一次工具调用。arguments 始终是结构化对象。"""

    name: str
    arguments: JsonObject = field(default_factory=dict)


@dataclass(frozen=True)
class ConversationMessage:
    """一条对话消息。

    - role: 消息角色。
    - content: 纯文本内容（assistant 发起工具调用时通常为空）。
    - tool_calls: assistant 消息触发的工具调用列表，按顺序保存。
    """

    role: Role
    content: str
    tool_calls: Optional[Tuple[ToolCall, ...]] = None


# 对话历史：不含 system 消息，按对话顺序排列，构造后不再修改
ConversationHistory = Tuple[ConversationMessage, ...]


@dataclass(frozen=True)
class ToolParameter:
    """单个工具参数的定义。"""

    name: str
    type: str
    required: bool
    description: str = ""
    item_type: Optional[str] = None


@dataclass(frozen=True)
class ToolDefinition:
    """一个可供模型选择的工具定义。"""

    name: str
    description: str
    parameters: Dict[str, ToolParameter] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolCallResponse:
    """决策结果：需要调用工具。"""

    tool_name: str
    arguments: JsonObject = field(default_factory=dict)
    action: ClassVar[Action] = "tool_call"

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action, "tool_name": self.tool_name, "arguments": self.arguments}


@dataclass(frozen=True)
class AnswerResponse:
    """决策结果：根据工具结果（或已有信息）直接回答。"""

    content: str
    action: ClassVar[Action] = "answer"

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action, "content": self.content}


@dataclass(frozen=True)
class ChatResponse:
    """决策结果：普通对话回复。"""

    content: str
    action: ClassVar[Action] = "chat"

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action, "content": self.content}


UnifiedResponse = Union[ToolCallResponse, AnswerResponse, ChatResponse]


@dataclass(frozen=True)
class ConversationContext:
    """Context Builder 的输出。"""

    system_context: str
    history: ConversationHistory
    tools: Tuple[ToolDefinition, ...] = ()


@dataclass(frozen=True)
class ModelSelector:
    """提交 prompt 时指定的后端模型（providerID / modelID）。"""

    provider_id: str
    model_id: str


@dataclass(frozen=True)
class ExchangeResult:
    """一次会话交换的结果。elapsed_ms 为墙钟耗时（毫秒）。"""

    content: str
    elapsed_ms: int
