"""
本地命令执行器

通过 asyncio 子进程执行 systemctl、ss、asterisk -rx 等本地命令
"""
import asyncio
import logging
import time
from typing import List, Optional

from ..models.results import CommandResult

logger = logging.getLogger(__name__)

COMMAND_NOT_FOUND = 127
COMMAND_TIMED_OUT = -1


class LocalCommandRunner:
    """
    本地命令执行器

    命令不存在时返回退出码 127，超时的命令会被杀掉并返回退出码 -1，
    两种情况都不会抛出异常
    """

    def __init__(self, default_timeout: float = 10.0):
        self.default_timeout = default_timeout

    async def execute(self, argv: List[str], timeout: Optional[float] = None) -> CommandResult:
        """
        执行命令

        Args:
            argv: 命令及参数，如 ["systemctl", "is-active", "asterisk"]
            timeout: 超时时间（秒），默认使用 default_timeout

        Returns:
            CommandResult: 命令执行结果
        """
        timeout = self.default_timeout if timeout is None else timeout
        start_time = time.monotonic()

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except FileNotFoundError:
            logger.debug("命令不存在: %s", argv[0])
            return CommandResult.from_argv(
                argv, COMMAND_NOT_FOUND, stderr=f"{argv[0]}: command not found"
            )

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.warning("命令执行超时(%.1fs): %s", timeout, " ".join(argv))
            return CommandResult.from_argv(
                argv, COMMAND_TIMED_OUT,
                stderr=f"timed out after {timeout}s",
                execution_time=time.monotonic() - start_time
            )

        result = CommandResult.from_argv(
            argv,
            process.returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            execution_time=time.monotonic() - start_time
        )
        logger.debug("%s", result)
        return result
