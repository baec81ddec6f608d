"""
AMI 客户端单元测试

使用 asyncio.start_server 在本机随机端口上模拟 AMI 服务
"""
import asyncio
import socket
from typing import List, Optional

from amidoctor.integrations.ami_client import AmiClient, build_login_action, is_loopback, redact
from amidoctor.models.protocol import ProtocolStatus
from conftest import FakePorts

BANNER = b"Asterisk Call Manager/5.0.1\r\n"


class FakeAmiServer:
    """只接受 hunter2 的 AMI 服务"""

    def __init__(self, respond: bool = True, echo_secret: bool = False, reply: Optional[bytes] = None):
        self.respond = respond
        self.reply = reply
        self.echo_secret = echo_secret
        self.received: List[bytes] = []
        self.server = None
        self.done = asyncio.Event()

    async def __aenter__(self) -> "FakeAmiServer":
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        return self

    async def __aexit__(self, *exc_info):
        self.server.close()
        await self.server.wait_closed()

    @property
    def port(self) -> int:
        return self.server.sockets[0].getsockname()[1]

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        writer.write(BANNER)
        await writer.drain()
        try:
            action = await reader.readuntil(b"\r\n\r\n")
            self.received.append(action)
            if not self.respond:
                # 不回应，等待客户端超时断开
                await reader.read()
                return
            if self.reply is not None:
                # 固定回复后保持连接，等待客户端断开
                writer.write(self.reply)
                await writer.drain()
                await reader.read()
                return
            if b"Secret: hunter2\r\n" in action:
                writer.write(b"Response: Success\r\nMessage: Authentication accepted\r\n\r\n")
                await writer.drain()
                self.received.append(await asyncio.wait_for(reader.readuntil(b"\r\n\r\n"), 2))
            else:
                message = b"Authentication failed"
                if self.echo_secret:
                    secret = action.split(b"Secret: ")[1].split(b"\r\n")[0]
                    message += b" for " + secret
                writer.write(b"Response: Error\r\nMessage: " + message + b"\r\n\r\n")
                await writer.drain()
        except (asyncio.IncompleteReadError, asyncio.TimeoutError, ConnectionError):
            pass
        finally:
            writer.close()
            self.done.set()


def _closed_port() -> int:
    """返回一个当前没有进程监听的端口"""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


class TestAmiClientLogin:
    """登录握手"""

    def test_authenticated(self):
        async def scenario():
            async with FakeAmiServer() as server:
                result = await AmiClient().login("127.0.0.1", server.port, "admin", "hunter2", timeout=3)
                await asyncio.wait_for(server.done.wait(), 2)
                return result, server.received

        result, received = asyncio.run(scenario())

        assert result.status == ProtocolStatus.AUTHENTICATED
        assert result.authenticated is True
        assert "Asterisk Call Manager" in result.raw_response
        assert result.protocol_version == "5.0.1"
        assert received[0] == build_login_action("admin", "hunter2")
        assert received[1] == b"Action: Logoff\r\n\r\n"

    def test_auth_failed(self):
        async def scenario():
            async with FakeAmiServer() as server:
                return await AmiClient().login("127.0.0.1", server.port, "admin", "wrong", timeout=3)

        result = asyncio.run(scenario())

        assert result.status == ProtocolStatus.AUTH_FAILED
        assert result.authenticated is False

    def test_secret_is_redacted(self):
        """服务端回显的 secret 不会出现在结果中"""
        async def scenario():
            async with FakeAmiServer(echo_secret=True) as server:
                return await AmiClient().login("127.0.0.1", server.port, "admin", "t0ps3cret", timeout=3)

        result = asyncio.run(scenario())

        assert result.status == ProtocolStatus.AUTH_FAILED
        assert "t0ps3cret" not in result.raw_response
        assert "t0ps****" in result.raw_response
        assert "t0ps3cret" not in str(result.to_dict())

    def test_unrecognised_response_returns_without_waiting(self):
        """Response 块以空行结束后立即停止读取，不等到超时"""
        reply = b"Response: Error\r\nMessage: Permission denied\r\n\r\n"

        async def scenario():
            async with FakeAmiServer(reply=reply) as server:
                return await AmiClient().login("127.0.0.1", server.port, "admin", "hunter2", timeout=3)

        result = asyncio.run(scenario())

        assert result.status == ProtocolStatus.TIMEOUT
        assert result.elapsed < 1.5
        assert "Permission denied" in result.raw_response

    def test_silent_server_times_out(self):
        async def scenario():
            async with FakeAmiServer(respond=False) as server:
                return await AmiClient().login("127.0.0.1", server.port, "admin", "hunter2", timeout=0.3)

        result = asyncio.run(scenario())

        assert result.status == ProtocolStatus.TIMEOUT
        assert result.elapsed < 2

    def test_connection_refused(self):
        port = _closed_port()

        result = asyncio.run(AmiClient().login("127.0.0.1", port, "admin", "hunter2", timeout=1))

        assert result.status == ProtocolStatus.UNREACHABLE

    def test_fast_fail_when_port_not_listening(self):
        """回环地址且端口未监听时不建立连接"""
        ports = FakePorts(False)
        client = AmiClient(port_inspector=ports)

        result = asyncio.run(client.login("127.0.0.1", 5038, "admin", "hunter2", timeout=1))

        assert result.status == ProtocolStatus.UNREACHABLE
        assert ports.calls == 1

    def test_no_fast_fail_for_remote_host(self):
        ports = FakePorts(False)
        client = AmiClient(port_inspector=ports)

        asyncio.run(client.login("192.0.2.1", 5038, "admin", "hunter2", timeout=0.2))

        assert ports.calls == 0


class TestHelpers:

    def test_is_loopback(self):
        assert is_loopback("127.0.0.1") is True
        assert is_loopback("localhost") is True
        assert is_loopback("::1") is True
        assert is_loopback("10.0.0.5") is False
        assert is_loopback("pbx.example.com") is False

    def test_redact(self):
        assert redact("Secret: hunter2", "hunter2") == "Secret: hun****"
        assert redact("nothing here", "") == "nothing here"
