"""系统提示词加载工具。

按角色(role) 从本目录读取对应的 system prompt 文本（<role>.md），
用于构造发给模型后端的 ChatMessage(role="system")。
"""

from functools import lru_cache
from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=None)
def load_system_prompt(role: str) -> str:
    """根据 Agent 角色加载系统提示词文本。"""

    fname = PROMPTS_DIR / f"{role}.md"
    return fname.read_text(encoding="utf-8")
