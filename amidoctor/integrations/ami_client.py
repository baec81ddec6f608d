"""
AMI 协议客户端

只实现登录握手：连接 5038 端口，发送 Login 动作，根据响应判断凭据是否有效。
所有网络操作都受同一个截止时间约束；secret 不会出现在日志和返回结果中。
"""
import asyncio
import ipaddress
import logging
import time
from typing import Optional

from ..models.credential import Credential, mask_secret
from ..models.protocol import ProtocolResult, ProtocolStatus
from ..utils.parsers.ami_parser import classify_login_response, is_conclusive, parse_banner
from .network_tools import PortInspector

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096
LOGOFF_TIMEOUT = 1.0


def is_loopback(host: str) -> bool:
    if host.lower() == "localhost":
        return True
    try:
        return ipaddress.ip_address(host.strip("[]")).is_loopback
    except ValueError:
        return False


def build_login_action(username: str, secret: str) -> bytes:
    return f"Action: Login\r\nUsername: {username}\r\nSecret: {secret}\r\n\r\n".encode("utf-8")


def redact(text: str, secret: str) -> str:
    """把文本中出现的 secret 替换为遮蔽值"""
    if not secret:
        return text
    return text.replace(secret, mask_secret(secret))


class AmiClient:
    """
    AMI 登录客户端

    Args:
        port_inspector: 本机端口探测器；目标为回环地址时先探测端口，未监听直接判定不可达
        fast_fail: 是否启用上述快速失败
    """

    def __init__(self, port_inspector: Optional[PortInspector] = None, fast_fail: bool = True):
        self.port_inspector = port_inspector
        self.fast_fail = fast_fail

    async def login(
        self,
        host: str,
        port: int,
        username: str,
        secret: str,
        timeout: float = 5.0
    ) -> ProtocolResult:
        """
        尝试一次 AMI 登录

        Args:
            host: AMI 地址
            port: AMI 端口
            username: 用户名（manager.conf 中的节名）
            secret: 密码
            timeout: 整个握手的超时时间（秒）

        Returns:
            ProtocolResult:
                - Authenticated: 收到 Response: Success
                - AuthFailed: 收到 Authentication failed
                - Unreachable: 端口未监听或连接失败
                - Timeout: 截止时间前没有收到可以下结论的响应
        """
        start_time = time.monotonic()
        deadline = start_time + timeout

        def result(status: ProtocolStatus, raw: str = "", detail: str = "") -> ProtocolResult:
            outcome = ProtocolResult(
                status=status,
                raw_response=redact(raw, secret),
                host=host,
                port=port,
                username=username,
                elapsed=time.monotonic() - start_time,
                detail=redact(detail, secret),
                protocol_version=parse_banner(raw)
            )
            logger.info("AMI 登录 %s@%s:%d -> %s", username, host, port, status.value)
            return outcome

        if self.fast_fail and self.port_inspector is not None and is_loopback(host):
            if not await self.port_inspector.is_listening(port):
                return result(ProtocolStatus.UNREACHABLE, detail=f"端口 {port} 未监听")

        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=max(deadline - time.monotonic(), 0.001)
            )
        except asyncio.TimeoutError:
            return result(ProtocolStatus.UNREACHABLE, detail="连接超时")
        except OSError as e:
            return result(ProtocolStatus.UNREACHABLE, detail=str(e))

        buffer = ""
        try:
            logger.debug("发送 Login: Username=%s Secret=%s", username, mask_secret(secret))
            writer.write(build_login_action(username, secret))
            await writer.drain()

            while not is_conclusive(buffer):
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                try:
                    chunk = await asyncio.wait_for(reader.read(READ_CHUNK_SIZE), timeout=remaining)
                except asyncio.TimeoutError:
                    break
                if not chunk:
                    break
                buffer += chunk.decode("utf-8", errors="replace")

            status = classify_login_response(buffer)
            if status == ProtocolStatus.AUTHENTICATED:
                await self._logoff(writer)
        except OSError as e:
            return result(ProtocolStatus.UNREACHABLE, raw=buffer, detail=str(e))
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass

        return result(status, raw=buffer)

    async def login_with(self, credential: Credential, timeout: float = 5.0) -> ProtocolResult:
        return await self.login(
            credential.host, credential.port, credential.username, credential.secret, timeout
        )

    async def _logoff(self, writer: asyncio.StreamWriter) -> None:
        writer.write(b"Action: Logoff\r\n\r\n")
        try:
            await asyncio.wait_for(writer.drain(), timeout=LOGOFF_TIMEOUT)
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug("发送 Logoff 失败: %s", e)
