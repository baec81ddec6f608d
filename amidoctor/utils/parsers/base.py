"""
解析器通用数据结构
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class PortListeningStatus:
    """端口监听状态"""
    is_listening: bool
    process_name: Optional[str] = None # 监听该端口的进程名（需要 -p 参数）
    pid: Optional[int] = None          # 进程ID
    bind_address: str = ""             # 绑定的地址（0.0.0.0 或特定IP）
    source: str = ""                   # 判断依据：ss / netstat / connect


@dataclass
class AmiMessage:
    """
    单个 AMI 消息块

    AMI 消息由若干 "Key: Value" 行组成，以空行结束。键名不区分大小写，
    同名键保留第一次出现的值
    """
    fields: Dict[str, str] = field(default_factory=dict)
    extra_lines: List[str] = field(default_factory=list)   # 无法解析为键值的行

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.fields.get(key.lower(), default)

    @property
    def response(self) -> Optional[str]:
        return self.get("response")

    @property
    def message(self) -> Optional[str]:
        return self.get("message")

    @property
    def event(self) -> Optional[str]:
        return self.get("event")
