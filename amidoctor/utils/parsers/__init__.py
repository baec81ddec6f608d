"""
命令输出与协议响应解析器
"""
from .ami_parser import classify_login_response, is_conclusive, parse_banner, parse_messages
from .base import AmiMessage, PortListeningStatus
from .port_parser import check_port_listening

__all__ = [
    "AmiMessage",
    "PortListeningStatus",
    "check_port_listening",
    "classify_login_response",
    "is_conclusive",
    "parse_banner",
    "parse_messages",
]
