"""
Asterisk 服务控制

优先使用 systemctl，不可用时回退到 pgrep / service
"""
import logging
import re
from typing import List, Optional

from ..models.results import CommandResult
from .command_runner import LocalCommandRunner

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_NAME = "asterisk"
VERSION_PATTERN = re.compile(r"Asterisk\s+(\S+)")


class SystemServiceController:
    """
    系统服务控制器

    Args:
        runner: 命令执行器
        service_name: 服务名，默认 asterisk
        timeout: 单条命令超时（秒）
    """

    def __init__(
        self,
        runner: Optional[LocalCommandRunner] = None,
        service_name: str = DEFAULT_SERVICE_NAME,
        timeout: float = 30.0
    ):
        self.runner = runner or LocalCommandRunner()
        self.service_name = service_name
        self.timeout = timeout

    async def _run(self, argv: List[str]) -> CommandResult:
        return await self.runner.execute(argv, timeout=self.timeout)

    async def is_running(self) -> bool:
        """服务是否在运行"""
        result = await self._run(["systemctl", "is-active", "--quiet", self.service_name])
        if result.success:
            return True

        # 没有 systemd 的环境下回退到进程检查
        result = await self._run(["pgrep", "-x", self.service_name])
        return result.success

    async def start(self) -> bool:
        """启动服务"""
        logger.info("启动服务: %s", self.service_name)
        result = await self._run(["systemctl", "start", self.service_name])
        if not result.success:
            result = await self._run(["service", self.service_name, "start"])
        if not result.success:
            logger.warning("启动 %s 失败: %s", self.service_name, result.stderr.strip())
        return result.success

    async def restart(self) -> bool:
        """重启服务"""
        logger.info("重启服务: %s", self.service_name)
        result = await self._run(["systemctl", "restart", self.service_name])
        if not result.success:
            result = await self._run(["service", self.service_name, "restart"])
        if not result.success:
            logger.warning("重启 %s 失败: %s", self.service_name, result.stderr.strip())
        return result.success

    async def reload(self) -> bool:
        """让 Asterisk 重新加载 manager.conf"""
        logger.info("重新加载 AMI 配置")
        result = await self._run(["asterisk", "-rx", "manager reload"])
        if not result.success:
            logger.warning("manager reload 失败: %s", result.stderr.strip() or result.stdout.strip())
        return result.success

    async def version(self) -> Optional[str]:
        """Asterisk 版本号，无法获取时返回 None"""
        result = await self._run(["asterisk", "-V"])
        if not result.success:
            return None
        match = VERSION_PATTERN.search(result.stdout)
        return match.group(1) if match else result.stdout.strip() or None
