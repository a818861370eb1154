"""领域层模型与纯函数。

包含：
- models: ConversationMessage / ToolDefinition / UnifiedResponse 等统一模型。
- conversation: 对话上下文构建与历史窗口函数。
- exceptions: 业务异常类型定义。
"""
