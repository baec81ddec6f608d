"""
AMI 协议结果模型
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ProtocolStatus(str, Enum):
    """登录握手结果分类"""
    AUTHENTICATED = "Authenticated"
    AUTH_FAILED = "AuthFailed"
    UNREACHABLE = "Unreachable"
    TIMEOUT = "Timeout"


@dataclass(frozen=True)
class ProtocolResult:
    """
    一次 AMI 登录尝试的结果

    raw_response 中的 secret 已被替换为遮蔽值
    """
    status: ProtocolStatus
    raw_response: str = ""
    host: str = ""
    port: int = 0
    username: str = ""
    elapsed: float = 0.0
    detail: str = ""
    protocol_version: Optional[str] = None   # 欢迎行中的版本，如 "5.0.1"

    @property
    def authenticated(self) -> bool:
        return self.status == ProtocolStatus.AUTHENTICATED

    def __str__(self) -> str:
        return f"{self.status.value} [{self.username}@{self.host}:{self.port}] ({self.elapsed:.2f}s)"

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式"""
        return {
            "status": self.status.value,
            "raw_response": self.raw_response,
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "elapsed": self.elapsed,
            "detail": self.detail,
            "protocol_version": self.protocol_version
        }
