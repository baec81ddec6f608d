"""
Pytest配置和全局fixtures
"""
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional

import pytest

# 添加项目根目录到Python路径，以便导入模块
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from amidoctor.conf.editor import ConfigEditor  # noqa: E402
from amidoctor.models.protocol import ProtocolResult, ProtocolStatus  # noqa: E402
from amidoctor.storage.backup_store import BackupStore  # noqa: E402
from amidoctor.utils.parsers.base import PortListeningStatus  # noqa: E402
from amidoctor.diagnostics.workflows import AmiWorkflows  # noqa: E402
from amidoctor.settings import AppSettings  # noqa: E402


SAMPLE_MANAGER_CONF = """\
;
; Asterisk Manager Interface
;
[general]
enabled = yes
port = 5038
bindaddr = 127.0.0.1   ; only local clients
;displayconnects = yes

[admin]
secret = hunter2 ; keep in sync with .env
deny = 0.0.0.0/0.0.0.0
permit = 127.0.0.1/255.255.255.255
read = all
write = all
"""


class FakeService:
    """假的服务控制器，记录调用"""

    def __init__(
        self,
        running: bool = True,
        start_succeeds: bool = True,
        reload_succeeds: bool = True,
        restart_succeeds: bool = True
    ):
        self.running = running
        self.start_succeeds = start_succeeds
        self.reload_succeeds = reload_succeeds
        self.restart_succeeds = restart_succeeds
        self.calls: List[str] = []

    async def is_running(self) -> bool:
        self.calls.append("is_running")
        return self.running

    async def start(self) -> bool:
        self.calls.append("start")
        if self.start_succeeds:
            self.running = True
        return self.start_succeeds

    async def restart(self) -> bool:
        self.calls.append("restart")
        if self.restart_succeeds:
            self.running = True
        return self.restart_succeeds

    async def reload(self) -> bool:
        self.calls.append("reload")
        return self.reload_succeeds

    async def version(self):
        return "20.5.0"


class FakePorts:
    """假的端口探测，按顺序返回预设结果，用完后重复最后一个"""

    def __init__(self, *answers: bool):
        self.answers = list(answers) or [True]
        self.calls = 0

    async def is_listening(self, port: int) -> bool:
        answer = self.answers[min(self.calls, len(self.answers) - 1)]
        self.calls += 1
        return answer

    async def status(self, port: int) -> PortListeningStatus:
        listening = await self.is_listening(port)
        return PortListeningStatus(is_listening=listening, bind_address="127.0.0.1" if listening else "", source="fake")


class FakeClient:
    """
    假的 AMI 客户端

    accepted_secret 为 None 时总是返回 default_status，
    否则 secret 相同返回 Authenticated，不同返回 AuthFailed
    """

    def __init__(
        self,
        accepted_secret: Optional[str] = None,
        default_status: ProtocolStatus = ProtocolStatus.AUTHENTICATED
    ):
        self.accepted_secret = accepted_secret
        self.default_status = default_status
        self.logins: List[tuple] = []

    async def login(self, host, port, username, secret, timeout=5.0) -> ProtocolResult:
        self.logins.append((host, port, username, secret))
        if self.accepted_secret is None:
            status = self.default_status
        elif secret == self.accepted_secret:
            status = ProtocolStatus.AUTHENTICATED
        else:
            status = ProtocolStatus.AUTH_FAILED
        return ProtocolResult(status=status, host=host, port=port, username=username)

    async def login_with(self, credential, timeout=5.0) -> ProtocolResult:
        return await self.login(credential.host, credential.port, credential.username, credential.secret, timeout)


class FakeMirror:
    """假的 .env 镜像"""

    def __init__(self, consistent: bool = True):
        self.consistent = consistent
        self.written = []

    def is_consistent(self, credential) -> bool:
        return self.consistent

    def write_credential(self, credential) -> bool:
        self.written.append(credential)
        self.consistent = True
        return True


async def no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def backup_store(tmp_path) -> BackupStore:
    return BackupStore(tmp_path / "backups")


@pytest.fixture
def manager_conf(tmp_path) -> Path:
    path = tmp_path / "asterisk" / "manager.conf"
    path.parent.mkdir()
    path.write_text(SAMPLE_MANAGER_CONF, encoding="utf-8")
    return path


@pytest.fixture
def editor(manager_conf, backup_store) -> ConfigEditor:
    return ConfigEditor(manager_conf, backup_store)


@contextmanager
def unchanged(*paths: Path):
    """断言代码块执行前后文件内容不变"""
    before = {path: path.read_bytes() for path in paths}
    yield
    for path, content in before.items():
        assert path.read_bytes() == content, f"{path} 被修改"


@pytest.fixture
def settings(tmp_path, manager_conf) -> AppSettings:
    return AppSettings(
        manager_conf=str(manager_conf),
        backup_dir=str(tmp_path / "backups"),
        env_file=str(tmp_path / "app" / ".env"),
        env_search_paths=[],
        report_dir=str(tmp_path / "reports")
    )


@pytest.fixture
def workflows(settings) -> AmiWorkflows:
    """使用假服务、假探测和假客户端的工作流（AMI 只接受 hunter2）"""
    wf = AmiWorkflows(settings, sleep=no_sleep)
    wf.service = FakeService()
    wf.ports = FakePorts(True)
    wf.client = FakeClient(accepted_secret="hunter2")
    return wf
