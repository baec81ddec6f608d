"""
数据模型包
提供所有核心数据结构的导入
"""
from .backup import BackupHandle
from .credential import Credential, mask_secret
from .protocol import ProtocolResult, ProtocolStatus
from .report import DiagnosticOutcome, DiagnosticStatus
from .results import CommandResult, StepResult

__all__ = [
    # 枚举类型
    "DiagnosticStatus",
    "ProtocolStatus",
    # 凭据相关
    "Credential",
    "mask_secret",
    # 结果相关
    "CommandResult",
    "StepResult",
    "ProtocolResult",
    "BackupHandle",
    # 报告相关
    "DiagnosticOutcome",
]
