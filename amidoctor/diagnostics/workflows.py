"""
命令工作流

CLI 子命令和 HTTP API 共用的入口：根据配置组装各个组件，
每个方法对应一个子命令（fix / check / test / diag / configure / backup）
"""
import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..conf.editor import ConfigEditor
from ..conf.locator import endpoint, is_enabled, locate, locate_user
from ..errors import SecretNotFoundError, SourceNotFoundError
from ..integrations.ami_client import AmiClient
from ..integrations.command_runner import LocalCommandRunner
from ..integrations.network_tools import PortInspector
from ..integrations.service_controller import SystemServiceController
from ..models.backup import BackupHandle
from ..models.credential import Credential, mask_secret
from ..models.protocol import ProtocolResult
from ..models.report import DiagnosticOutcome
from ..settings import AppSettings
from ..storage.backup_store import DEFAULT_KEEP, BackupStore
from ..storage.env_store import EnvironmentStore
from .controller import ControllerOptions, DiagnosticController

logger = logging.getLogger(__name__)

# backup 子命令可以操作的文件
BACKUP_TARGETS = ("manager", "env")


class AmiWorkflows:
    """
    工作流集合

    Args:
        settings: 应用配置
        runner: 本地命令执行器，默认按 settings.command_timeout 创建
        sleep: 重试等待函数
    """

    def __init__(
        self,
        settings: AppSettings,
        runner: Optional[LocalCommandRunner] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.settings = settings
        self.sleep = sleep
        self.runner = runner or LocalCommandRunner(default_timeout=settings.command_timeout)
        self.backups = BackupStore(settings.backup_dir)
        self.editor = ConfigEditor(settings.manager_conf, self.backups)
        self.env = EnvironmentStore(
            self.backups,
            search_paths=settings.env_search_paths,
            prefix=settings.env_prefix,
            env_file=settings.env_file
        )
        self.service = SystemServiceController(
            self.runner, service_name=settings.service_name, timeout=settings.command_timeout
        )
        self.ports = PortInspector(self.runner, connect_host=settings.host)
        self.client = AmiClient(self.ports)

    def controller_options(
        self,
        auto_fix: bool,
        reload: bool = True,
        username: Optional[str] = None,
        secret: Optional[str] = None
    ) -> ControllerOptions:
        settings = self.settings
        return ControllerOptions(
            auto_fix=auto_fix,
            reload=reload,
            connect_timeout=settings.connect_timeout,
            username=username,
            secret=secret,
            default_username=settings.default_username,
            default_secret=settings.default_secret,
            bindaddr=settings.bindaddr,
            port=settings.port,
            grace_retry=settings.grace_retry.to_policy(),
            retest_retry=settings.retest_retry.to_policy()
        )

    def controller(self, options: ControllerOptions) -> DiagnosticController:
        return DiagnosticController(
            config=self.editor,
            client=self.client,
            service=self.service,
            ports=self.ports,
            mirror=self.env,
            options=options,
            sleep=self.sleep
        )

    async def fix(
        self,
        reload: bool = True,
        username: Optional[str] = None,
        secret: Optional[str] = None
    ) -> DiagnosticOutcome:
        """检查并自动修复，成功后同步 .env"""
        options = self.controller_options(True, reload, username, secret)
        return await self.controller(options).run()

    async def check(self, username: Optional[str] = None) -> DiagnosticOutcome:
        """只读检查，不修改任何文件"""
        options = self.controller_options(False, reload=False, username=username)
        return await self.controller(options).run()

    async def configure(
        self,
        username: Optional[str] = None,
        secret: Optional[str] = None,
        reload: bool = True
    ) -> DiagnosticOutcome:
        """按给定用户名和 secret 写入 AMI 配置"""
        options = self.controller_options(True, reload, username, secret)
        return await self.controller(options).configure()

    def _test_credential(self) -> Credential:
        """优先使用 .env 中的凭据，其次 manager.conf"""
        credential = self.env.read_credential()
        if credential is not None:
            return credential
        return locate(self.editor.load())

    async def test(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        secret: Optional[str] = None
    ) -> ProtocolResult:
        """
        测试 AMI 登录

        未指定的参数依次从 .env、manager.conf 中读取

        Raises:
            SecretNotFoundError: 没有可用的 secret
            ConfigNotFoundError: .env 中没有凭据且 manager.conf 不存在
        """
        if username and secret:
            base = Credential(
                username=username, secret=secret, host=self.settings.host, port=self.settings.port
            )
        else:
            base = self._test_credential()
            if username and username != base.username:
                base = locate_user(self.editor.load(), username)
            if secret:
                base = base.with_secret(secret)

        return await self.client.login(
            host or base.host,
            port or base.port,
            base.username,
            base.secret,
            timeout=self.settings.connect_timeout
        )

    async def diag(self) -> Dict[str, Any]:
        """
        收集诊断信息快照

        Returns:
            dict: service / config / port / env / connection / consistent 六部分
        """
        running = await self.service.is_running()
        version = await self.service.version()

        config: Dict[str, Any] = {"path": str(self.editor.path), "exists": self.editor.exists()}
        credential: Optional[Credential] = None
        port = self.settings.port
        if config["exists"]:
            doc = self.editor.load()
            host, port = endpoint(doc)
            config.update({"enabled": is_enabled(doc), "host": host, "port": port})
            try:
                credential = locate(doc)
            except SecretNotFoundError as e:
                config["error"] = str(e)
            else:
                config.update({"username": credential.username, "masked_secret": credential.masked_secret})

        port_status = await self.ports.status(port)

        env_path = self.env.find_env_file()
        mirror = self.env.read_mirror(env_path)
        env: Dict[str, Any] = {"path": str(env_path), "exists": env_path.is_file()}
        env.update({key: value for key, value in mirror.items() if key != "secret"})
        env["secret"] = mask_secret(mirror["secret"]) if mirror["secret"] else None

        connection = None
        if credential is not None:
            result = await self.client.login_with(credential, timeout=self.settings.connect_timeout)
            connection = result.to_dict()

        return {
            "service": {"name": self.settings.service_name, "running": running, "version": version},
            "config": config,
            "port": {
                "port": port,
                "listening": port_status.is_listening,
                "bind_address": port_status.bind_address,
                "process": port_status.process_name,
                "source": port_status.source
            },
            "env": env,
            "connection": connection,
            "consistent": self.env.is_consistent(credential, env_path) if credential else None
        }

    # ------------------------------------------------------------------
    # backup 子命令
    # ------------------------------------------------------------------

    def backup_target(self, target: str = "manager") -> Path:
        """把 backup 子命令的目标名映射为文件路径"""
        if target == "manager":
            return self.editor.path
        if target == "env":
            return self.env.find_env_file()
        raise ValueError(f"未知的备份目标: {target}，可选: {', '.join(BACKUP_TARGETS)}")

    def backup_create(self, target: str = "manager") -> BackupHandle:
        return self.backups.backup(self.backup_target(target))

    def backup_list(self, target: str = "manager") -> List[BackupHandle]:
        return self.backups.list(self.backup_target(target))

    def backup_restore(self, name: Optional[str] = None, target: str = "manager") -> Optional[BackupHandle]:
        """
        恢复快照

        Args:
            name: 快照文件名，为 None 时恢复最新的快照
            target: manager 或 env

        Returns:
            恢复前为目标文件创建的快照

        Raises:
            SourceNotFoundError: 找不到指定快照
        """
        path = self.backup_target(target)
        handle = self.backups.find(path, name) if name else self.backups.latest(path)
        if handle is None:
            raise SourceNotFoundError("找不到可恢复的快照", detail=name or str(path))
        with self.editor.lock():
            return self.backups.restore(handle)

    def backup_cleanup(self, keep: int = DEFAULT_KEEP, target: str = "manager") -> List[BackupHandle]:
        return self.backups.cleanup(self.backup_target(target), keep=keep)


def build_workflows(settings: AppSettings) -> AmiWorkflows:
    return AmiWorkflows(settings)
