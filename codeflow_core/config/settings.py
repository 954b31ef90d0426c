"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_APPROVAL_TOOLS = ["diff_edit_file", "run_terminal_cmd"]

DEFAULT_SHELL_DENY_LIST = [
    "rm -rf /",
    "rm -rf ~",
    "rm -rf *",
    "mkfs",
    "dd if=",
    ":(){ :|:& };:",
    ":(){:|:&};:",
    "chmod -r 777 /",
    "chmod 777 /",
    "> /dev/sd",
    "shutdown",
    "reboot",
    "git push --force",
    "git push -f",
]


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("CODEFLOW_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- Provider 相关配置 ----
    default_provider: str = Field(
        default="gemini",
        description="默认使用的 Provider 名称，例如 openai、gemini",
    )
    default_model: str = Field(
        default="coder-chat",
        description="逻辑模型名，由 registry 映射为具体厂商模型",
    )
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API 密钥")
    openai_base_url: str = Field(default="https://api.openai.com/v1", description="OpenAI API 基础URL")
    gemini_api_key: Optional[str] = Field(default=None, description="Gemini API 密钥")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/openai",
        description="Gemini OpenAI 兼容接口基础URL",
    )
    http_timeout: float = Field(default=60.0, ge=1.0, description="HTTP 超时时间（秒）")

    # ---- 存储与日志 ----
    storage_root: str = Field(default=".storage", description="线程检查点存储根目录")
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    # ---- Turn Controller ----
    max_tool_rounds: int = Field(
        default=25,
        ge=1,
        le=100,
        description="单轮对话内模型调用的最大次数",
    )
    human_approval_tools: List[str] = Field(
        default_factory=lambda: list(DEFAULT_APPROVAL_TOOLS),
        description="执行前必须经过人工审批的工具名",
    )

    # ---- 工具 ----
    workspace_root: str = Field(
        default_factory=lambda: str(Path.cwd()),
        description="工具可访问的项目根目录",
    )
    search_k: int = Field(default=5, ge=1, le=50, description="语义检索返回条数")
    grep_max_results: int = Field(default=200, ge=1, description="grep 最多返回的匹配行数")
    shell_timeout_seconds: float = Field(default=60.0, gt=0, description="终端命令硬超时（秒）")
    shell_max_output_bytes: int = Field(default=64_000, ge=1024, description="终端命令输出上限（字节）")
    shell_deny_list: List[str] = Field(
        default_factory=lambda: list(DEFAULT_SHELL_DENY_LIST),
        description="命令中出现即拒绝执行的子串",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("openai_api_key", "gemini_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = Settings()
