"""
外部集成：本地命令、服务控制、端口探测和 AMI 协议客户端
"""
from .ami_client import AmiClient
from .command_runner import LocalCommandRunner
from .network_tools import PortInspector
from .service_controller import SystemServiceController

__all__ = [
    "AmiClient",
    "LocalCommandRunner",
    "PortInspector",
    "SystemServiceController",
]
