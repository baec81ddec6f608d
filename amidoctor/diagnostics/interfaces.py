"""
诊断控制器依赖的窄接口

控制器只通过这些接口访问外部世界，测试中用假实现替换
"""
from typing import ContextManager, Optional, Protocol

from ..conf.document import ConfigDocument
from ..models.backup import BackupHandle
from ..models.credential import Credential
from ..models.protocol import ProtocolResult


class ConfigFile(Protocol):
    """manager.conf 读写（见 ConfigEditor）"""

    def exists(self) -> bool: ...

    def load(self) -> ConfigDocument: ...

    def save(self, doc: ConfigDocument) -> Optional[BackupHandle]: ...

    def lock(self) -> ContextManager: ...


class ProtocolClient(Protocol):
    """AMI 登录（见 AmiClient）"""

    async def login(
        self, host: str, port: int, username: str, secret: str, timeout: float = 5.0
    ) -> ProtocolResult: ...


class ServiceController(Protocol):
    """Asterisk 服务控制（见 SystemServiceController）"""

    async def is_running(self) -> bool: ...

    async def start(self) -> bool: ...

    async def restart(self) -> bool: ...

    async def reload(self) -> bool: ...


class PortChecker(Protocol):
    """端口监听探测（见 PortInspector）"""

    async def is_listening(self, port: int) -> bool: ...


class CredentialMirror(Protocol):
    """.env 凭据镜像（见 EnvironmentStore）"""

    def is_consistent(self, credential: Credential) -> bool: ...

    def write_credential(self, credential: Credential) -> bool: ...
