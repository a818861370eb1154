"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置，优先级依次递减。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = {"fatal", "error", "warn", "warning", "info", "debug", "trace"}


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("ADAPTER_CONFIG_FILE")
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

    # ---- HTTP 服务 ----
    host: str = Field(default="0.0.0.0", description="监听地址")
    port: int = Field(default=3000, ge=1, le=65535, description="监听端口")

    # ---- OpenCode 后端 ----
    opencode_url: str = Field(default="http://localhost", description="OpenCode 服务地址（不含端口）")
    opencode_port: int = Field(default=7272, ge=1, le=65535, description="OpenCode 服务端口")
    model_provider: str = Field(default="github-copilot", description="OpenCode providerID")
    model_id: str = Field(default="gpt-4o", description="OpenCode modelID，同时作为对外模型名")

    # ---- 超时（秒），三层互相独立 ----
    http_timeout: float = Field(default=10.0, gt=0, description="创建会话/轮询请求的超时")
    submission_timeout: float = Field(default=40.0, gt=0, description="提交 prompt 调用本身的超时")
    response_timeout: float = Field(default=50.0, gt=0, description="决策请求的生成+轮询总超时")
    answer_response_timeout: float = Field(default=10.0, gt=0, description="降级回答请求的总超时")
    cleanup_timeout: float = Field(default=5.0, gt=0, description="删除会话的超时")
    poll_interval: float = Field(default=0.3, gt=0, description="轮询间隔")

    recent_window_size: int = Field(default=10, ge=1, le=100, description="决策 prompt 中的最近消息数")

    # ---- 日志 ----
    log_level: str = Field(default="info", description="日志级别")
    log_dir: Optional[str] = Field(default=None, description="日志目录，未设置时只输出到控制台")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        protected_namespaces=("settings_",),
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.lower()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(LOG_LEVELS)}")
        return level

    @field_validator("opencode_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def opencode_base_url(self) -> str:
        return f"{self.opencode_url}:{self.opencode_port}"

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
