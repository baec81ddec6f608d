"""
诊断与修复：状态机控制器、重试策略和报告
"""
from .controller import ControllerOptions, DiagnosticController
from .reporter import ReportGenerator
from .retry import RetryPolicy, retry_until

__all__ = [
    "ControllerOptions",
    "DiagnosticController",
    "ReportGenerator",
    "RetryPolicy",
    "retry_until",
]
