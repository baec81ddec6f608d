"""
配置加载

从 YAML 文件加载配置（默认 config/amidoctor.yaml，可用 AMIDOCTOR_CONFIG 指定），
支持 ${VAR} / ${VAR:-默认值} 环境变量占位符，以及 AMIDOCTOR_<字段名> 环境变量覆盖。
命令行参数在此基础上再覆盖。
"""
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field

from .diagnostics.retry import RetryPolicy
from .storage.env_store import DEFAULT_PREFIX, DEFAULT_SEARCH_PATHS

CONFIG_ENV_VAR = "AMIDOCTOR_CONFIG"
ENV_OVERRIDE_PREFIX = "AMIDOCTOR_"
PLACEHOLDER_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


class RetrySettings(BaseModel):
    """重试配置"""
    max_attempts: int = Field(default=3, ge=1, description="最大尝试次数（含第一次）")
    delay: float = Field(default=1.0, ge=0, description="首次重试前的等待秒数")
    backoff: float = Field(default=2.0, ge=1, description="等待时间倍增系数")
    max_delay: float = Field(default=10.0, ge=0, description="单次等待上限")

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            delay=self.delay,
            backoff=self.backoff,
            max_delay=self.max_delay
        )


class AppSettings(BaseModel):
    """amidoctor 配置"""
    manager_conf: str = Field(default="/etc/asterisk/manager.conf", description="manager.conf 路径")
    backup_dir: str = Field(default="/etc/asterisk/backups", description="备份目录")
    env_file: Optional[str] = Field(default=None, description="指定 .env 路径，为空时自动查找")
    env_search_paths: List[str] = Field(default_factory=lambda: list(DEFAULT_SEARCH_PATHS))
    env_prefix: str = Field(default=DEFAULT_PREFIX, description=".env 中 AMI 变量的前缀")
    host: str = Field(default="127.0.0.1", description="AMI 地址")
    port: int = Field(default=5038, gt=0, lt=65536, description="AMI 端口")
    bindaddr: str = Field(default="127.0.0.1", description="修复时写入的 bindaddr")
    default_username: str = Field(default="admin", description="manager.conf 中没有用户时使用的用户名")
    default_secret: str = Field(default="rayanpbx_ami_secret", description="manager.conf 中没有 secret 时使用的 secret")
    connect_timeout: float = Field(default=5.0, gt=0, description="AMI 握手超时（秒）")
    command_timeout: float = Field(default=30.0, gt=0, description="本地命令超时（秒）")
    service_name: str = Field(default="asterisk", description="systemd 服务名")
    grace_retry: RetrySettings = Field(
        default_factory=lambda: RetrySettings(max_attempts=5, delay=1.0, backoff=1.0),
        description="修复后等待端口监听的重试策略"
    )
    retest_retry: RetrySettings = Field(
        default_factory=lambda: RetrySettings(max_attempts=3, delay=2.0, backoff=1.5),
        description="修复后重新认证的重试策略"
    )
    report_dir: str = Field(default="runtime/reports", description="Markdown 报告输出目录")
    log_file: Optional[str] = Field(default=None, description="日志文件路径，为空时只输出到终端")


def default_config_path() -> Path:
    project_root = Path(__file__).parent.parent
    return project_root / "config" / "amidoctor.yaml"


def expand_placeholders(value: Any) -> Any:
    """递归替换 ${VAR} 占位符"""
    if isinstance(value, str):
        return PLACEHOLDER_PATTERN.sub(
            lambda m: os.getenv(m.group(1), m.group(2) if m.group(2) is not None else ""),
            value
        )
    if isinstance(value, list):
        return [expand_placeholders(item) for item in value]
    if isinstance(value, dict):
        return {key: expand_placeholders(item) for key, item in value.items()}
    return value


def _env_overrides() -> Dict[str, Any]:
    """收集 AMIDOCTOR_<字段名> 形式的环境变量（不支持嵌套字段）"""
    overrides: Dict[str, Any] = {}
    for name in AppSettings.model_fields:
        raw = os.getenv(f"{ENV_OVERRIDE_PREFIX}{name.upper()}")
        if raw is None or name in ("grace_retry", "retest_retry"):
            continue
        if name == "env_search_paths":
            overrides[name] = [p for p in raw.split(os.pathsep) if p]
        else:
            overrides[name] = raw
    return overrides


def load_settings(
    config_path: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None
) -> AppSettings:
    """
    加载配置

    优先级（从低到高）：字段默认值 < YAML 文件 < AMIDOCTOR_* 环境变量 < overrides

    Args:
        config_path: YAML 路径，为 None 时使用 AMIDOCTOR_CONFIG 或默认路径
        overrides: 命令行参数等显式覆盖，值为 None 的项会被忽略

    Returns:
        AppSettings

    Raises:
        FileNotFoundError: 显式指定的配置文件不存在
        yaml.YAMLError: 配置文件格式错误
        pydantic.ValidationError: 配置值不合法
    """
    explicit = config_path or os.getenv(CONFIG_ENV_VAR)
    path = Path(explicit) if explicit else default_config_path()

    data: Dict[str, Any] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    elif explicit:
        raise FileNotFoundError(f"配置文件不存在: {path}")

    data = expand_placeholders(data)
    data.update(_env_overrides())
    if overrides:
        data.update({key: value for key, value in overrides.items() if value is not None})

    return AppSettings.model_validate(data)
