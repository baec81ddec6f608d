"""
AMI 凭据模型
"""
from dataclasses import dataclass
from typing import Any, Dict


DEFAULT_AMI_HOST = "127.0.0.1"
DEFAULT_AMI_PORT = 5038
DEFAULT_AMI_USERNAME = "admin"


def mask_secret(secret: str) -> str:
    """
    遮蔽 secret，仅保留少量前缀

    最多显示4个字符，且不超过 secret 长度的一半，避免短密码被完整暴露

    Args:
        secret: 原始 secret

    Returns:
        形如 "hunt****" 的字符串
    """
    if not secret:
        return ""
    visible = min(4, len(secret) // 2)
    return f"{secret[:visible]}****"


@dataclass(frozen=True)
class Credential:
    """
    AMI 登录凭据

    每次运行时从 manager.conf 临时解析，不单独持久化，只会镜像到 .env
    """
    username: str
    secret: str
    host: str = DEFAULT_AMI_HOST
    port: int = DEFAULT_AMI_PORT

    def __post_init__(self):
        if not 0 < int(self.port) < 65536:
            raise ValueError(f"端口超出范围: {self.port}")

    def __repr__(self) -> str:
        return (f"Credential(username={self.username!r}, secret={self.masked_secret!r}, "
                f"host={self.host!r}, port={self.port})")

    @property
    def masked_secret(self) -> str:
        return mask_secret(self.secret)

    def with_secret(self, secret: str) -> "Credential":
        """返回替换了 secret 的新凭据"""
        return Credential(username=self.username, secret=secret, host=self.host, port=self.port)

    def to_dict(self, reveal: bool = False) -> Dict[str, Any]:
        """转换为字典格式（默认遮蔽 secret）"""
        return {
            "username": self.username,
            "secret": self.secret if reveal else self.masked_secret,
            "host": self.host,
            "port": self.port
        }
