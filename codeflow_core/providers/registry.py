"""Provider 与模型配置。

本模块将“逻辑模型名”与“具体厂商模型名”解耦：

- 逻辑名（logical_name）：在代码里使用的统一名称，例如 "coder-chat"。
- provider_model：厂商实际提供的模型 ID，例如 "gpt-4.1"。

上层只关心逻辑名，具体用哪个底层模型由这里集中配置。"""

from dataclasses import dataclass
from typing import Dict, Mapping


@dataclass
class ModelConfig:
    """单个逻辑模型的配置。"""

    logical_name: str
    provider_model: str
    max_tokens: int
    default_temperature: float


@dataclass
class ProviderConfig:
    """某个 Provider 的整体配置。

    api_key_field / base_url_field 指向 Settings 上对应的字段名。
    """

    name: str
    base_url: str
    api_key_field: str
    base_url_field: str
    models: Dict[str, ModelConfig]


OPENAI_CONFIG = ProviderConfig(
    name="openai",
    base_url="https://api.openai.com/v1",
    api_key_field="openai_api_key",
    base_url_field="openai_base_url",
    models={
        "coder-chat": ModelConfig(
            logical_name="coder-chat",
            provider_model="gpt-4.1",
            max_tokens=8192,
            default_temperature=0.2,
        )
    },
)

# Gemini 通过其 OpenAI 兼容接口接入
GEMINI_CONFIG = ProviderConfig(
    name="gemini",
    base_url="https://generativelanguage.googleapis.com/v1beta/openai",
    api_key_field="gemini_api_key",
    base_url_field="gemini_base_url",
    models={
        "coder-chat": ModelConfig(
            logical_name="coder-chat",
            provider_model="gemini-2.5-flash",
            max_tokens=8192,
            default_temperature=0.2,
        )
    },
)


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "openai": OPENAI_CONFIG,
    "gemini": GEMINI_CONFIG,
}


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in PROVIDER_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown provider: {name!r}")
