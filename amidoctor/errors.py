"""
异常定义

所有业务异常都继承自 AmiDoctorError，并携带一个稳定的 code，
诊断控制器据此生成失败原因，CLI/API 据此展示
"""
from typing import Optional


class AmiDoctorError(Exception):
    """amidoctor 异常基类"""

    code = "Error"

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message} ({self.detail})"
        return self.message


class ConfigNotFoundError(AmiDoctorError):
    """manager.conf 不存在"""
    code = "ConfigNotFound"


class SecretNotFoundError(AmiDoctorError):
    """配置文件中找不到可用的 secret"""
    code = "SecretNotFound"


class SourceNotFoundError(AmiDoctorError):
    """待备份的源文件不存在"""
    code = "SourceNotFound"


class BackupFailedError(AmiDoctorError):
    """备份失败，后续的写操作必须中止"""
    code = "BackupFailed"


class ServiceDownError(AmiDoctorError):
    """Asterisk 服务未运行或启动失败"""
    code = "ServiceDown"


class NotEnabledError(AmiDoctorError):
    """manager.conf 中 AMI 未启用"""
    code = "NotEnabled"


class PortNotListeningError(AmiDoctorError):
    """AMI 端口未监听"""
    code = "PortNotListening"


class UnreachableError(AmiDoctorError):
    """AMI 端点不可达"""
    code = "Unreachable"


class AmiTimeoutError(AmiDoctorError):
    """AMI 响应超时"""
    code = "Timeout"


class AuthFailedError(AmiDoctorError):
    """AMI 认证失败"""
    code = "AuthFailed"


class RemediationFailedError(AmiDoctorError):
    """自动修复后仍然无法认证"""
    code = "RemediationFailed"


class ConcurrentRunError(AmiDoctorError):
    """同一个配置文件上已有其他修复任务在运行"""
    code = "ConcurrentRun"
