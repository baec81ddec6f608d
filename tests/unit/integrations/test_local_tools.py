"""
本地命令、服务控制和端口探测单元测试
"""
import asyncio
import sys
from typing import Dict, List, Tuple

from amidoctor.integrations.command_runner import COMMAND_NOT_FOUND, COMMAND_TIMED_OUT, LocalCommandRunner
from amidoctor.integrations.network_tools import PortInspector
from amidoctor.integrations.service_controller import SystemServiceController
from amidoctor.models.results import CommandResult


class ScriptedRunner:
    """按命令名返回预设结果的执行器，未配置的命令视为不存在"""

    def __init__(self, responses: Dict[Tuple[str, ...], Tuple[int, str]]):
        self.responses = responses
        self.executed: List[List[str]] = []

    async def execute(self, argv, timeout=None) -> CommandResult:
        self.executed.append(list(argv))
        exit_code, stdout = self.responses.get(tuple(argv), (COMMAND_NOT_FOUND, ""))
        return CommandResult.from_argv(argv, exit_code, stdout=stdout)


class TestLocalCommandRunner:

    def test_success(self):
        result = asyncio.run(LocalCommandRunner().execute([sys.executable, "-c", "print('ok')"]))

        assert result.success is True
        assert result.stdout.strip() == "ok"

    def test_command_not_found(self):
        result = asyncio.run(LocalCommandRunner().execute(["amidoctor-no-such-command"]))

        assert result.success is False
        assert result.exit_code == COMMAND_NOT_FOUND

    def test_timeout(self):
        argv = [sys.executable, "-c", "import time; time.sleep(5)"]

        result = asyncio.run(LocalCommandRunner().execute(argv, timeout=0.2))

        assert result.exit_code == COMMAND_TIMED_OUT


class TestSystemServiceController:

    def test_running_via_systemctl(self):
        runner = ScriptedRunner({("systemctl", "is-active", "--quiet", "asterisk"): (0, "")})

        assert asyncio.run(SystemServiceController(runner).is_running()) is True
        assert len(runner.executed) == 1

    def test_falls_back_to_pgrep(self):
        runner = ScriptedRunner({("pgrep", "-x", "asterisk"): (0, "1234\n")})

        assert asyncio.run(SystemServiceController(runner).is_running()) is True
        assert runner.executed[-1] == ["pgrep", "-x", "asterisk"]

    def test_not_running(self):
        runner = ScriptedRunner({
            ("systemctl", "is-active", "--quiet", "asterisk"): (3, ""),
            ("pgrep", "-x", "asterisk"): (1, ""),
        })

        assert asyncio.run(SystemServiceController(runner).is_running()) is False

    def test_restart_falls_back_to_service(self):
        runner = ScriptedRunner({("service", "asterisk", "restart"): (0, "")})

        assert asyncio.run(SystemServiceController(runner).restart()) is True
        assert runner.executed == [["systemctl", "restart", "asterisk"], ["service", "asterisk", "restart"]]

    def test_reload(self):
        runner = ScriptedRunner({("asterisk", "-rx", "manager reload"): (0, "")})

        assert asyncio.run(SystemServiceController(runner).reload()) is True

    def test_version(self):
        runner = ScriptedRunner({("asterisk", "-V"): (0, "Asterisk 20.5.0\n")})

        assert asyncio.run(SystemServiceController(runner).version()) == "20.5.0"

    def test_version_unavailable(self):
        assert asyncio.run(SystemServiceController(ScriptedRunner({})).version()) is None


class TestPortInspector:

    def test_uses_ss(self):
        runner = ScriptedRunner({
            ("ss", "-tuln"): (0, "tcp   LISTEN 0      128        127.0.0.1:5038       0.0.0.0:*\n")
        })

        status = asyncio.run(PortInspector(runner).status(5038))

        assert status.is_listening is True
        assert status.source == "ss"

    def test_falls_back_to_netstat(self):
        runner = ScriptedRunner({
            ("netstat", "-tuln"): (0, "tcp        0      0 0.0.0.0:5038            0.0.0.0:*               LISTEN\n")
        })

        status = asyncio.run(PortInspector(runner).status(5038))

        assert status.is_listening is True
        assert status.source == "netstat"

    def test_falls_back_to_connect(self):
        """ss 和 netstat 都不存在时直接连接端口"""
        async def scenario():
            server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
            port = server.sockets[0].getsockname()[1]
            try:
                return await PortInspector(ScriptedRunner({}), timeout=1).status(port)
            finally:
                server.close()
                await server.wait_closed()

        status = asyncio.run(scenario())

        assert status.is_listening is True
        assert status.source == "connect"
