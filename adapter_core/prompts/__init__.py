"""提示词模板加载与工具目录格式化。

模板按语言(locale) 存放在 prompts/<locale>/ 目录下，使用 `$name` 占位符
（string.Template），避免与模板中的 JSON 花括号冲突。
"""

from functools import lru_cache
from pathlib import Path
from string import Template
from typing import Iterable

from adapter_core.domain.models import ToolDefinition

PROMPTS_DIR = Path(__file__).resolve().parent

DECISION_SYSTEM_PROMPT = "You are an intelligent assistant. Respond with valid JSON only."


@lru_cache(maxsize=None)
def load_prompt(name: str, locale: str = "en") -> str:
    """根据名称和语言加载提示词模板文本。"""

    fname = PROMPTS_DIR / locale / f"{name}.md"
    return fname.read_text(encoding="utf-8").strip()


def render_prompt(name: str, **values: str) -> str:
    """加载模板并替换占位符，结果去除首尾空白。"""

    return Template(load_prompt(name)).safe_substitute(**values).strip()


def format_tools(tools: Iterable[ToolDefinition]) -> str:
    """将工具目录格式化为便于模型阅读的编号列表。"""

    blocks = []
    for index, tool in enumerate(tools, start=1):
        lines = []
        for key, param in tool.parameters.items():
            required = " (required)" if param.required else ""
            item = f"<{param.item_type}>" if param.item_type else ""
            desc = f" - {param.description}" if param.description else ""
            lines.append(f"  - {key}{required}: {param.type}{item}{desc}")
        params_text = "\n".join(lines) or "   (no parameters)"
        blocks.append(
            f"{index}. {tool.name}\n"
            f"   Description: {tool.description}\n"
            f"   Parameters:\n"
            f"{params_text}"
        )
    return "\n\n".join(blocks)
