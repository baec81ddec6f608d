"""
端口探测

依次尝试 ss -tuln、netstat -tuln，两者都不可用时直接向本机端口发起 TCP 连接
"""
import asyncio
import logging
from typing import Optional

from ..models.credential import DEFAULT_AMI_HOST
from ..utils.parsers.base import PortListeningStatus
from ..utils.parsers.port_parser import check_port_listening
from .command_runner import COMMAND_NOT_FOUND, LocalCommandRunner

logger = logging.getLogger(__name__)


class PortInspector:
    """
    本机端口监听探测

    Args:
        runner: 命令执行器
        connect_host: 回退到 TCP 连接时使用的地址
        timeout: 单次探测超时（秒）
    """

    def __init__(
        self,
        runner: Optional[LocalCommandRunner] = None,
        connect_host: str = DEFAULT_AMI_HOST,
        timeout: float = 5.0
    ):
        self.runner = runner or LocalCommandRunner()
        self.connect_host = connect_host
        self.timeout = timeout

    async def status(self, port: int) -> PortListeningStatus:
        """
        探测端口状态

        Args:
            port: 端口号

        Returns:
            PortListeningStatus
        """
        for tool in ("ss", "netstat"):
            result = await self.runner.execute([tool, "-tuln"], timeout=self.timeout)
            if result.exit_code == COMMAND_NOT_FOUND:
                continue
            if result.success:
                return check_port_listening(result, port)
            logger.debug("%s 执行失败: %s", tool, result.stderr.strip())

        return await self._connect(port)

    async def _connect(self, port: int) -> PortListeningStatus:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.connect_host, port),
                timeout=self.timeout
            )
        except (OSError, asyncio.TimeoutError):
            return PortListeningStatus(is_listening=False, source="connect")
        writer.close()
        await writer.wait_closed()
        return PortListeningStatus(is_listening=True, bind_address=self.connect_host, source="connect")

    async def is_listening(self, port: int) -> bool:
        status = await self.status(port)
        logger.debug("端口 %d 监听状态: %s (%s)", port, status.is_listening, status.source)
        return status.is_listening
