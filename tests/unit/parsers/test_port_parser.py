"""
端口监听解析器单元测试
"""
from amidoctor.models.results import CommandResult
from amidoctor.utils.parsers.port_parser import check_port_listening


def _result(command: str, stdout: str) -> CommandResult:
    return CommandResult.from_argv(command.split(), 0, stdout=stdout)


SS_OUTPUT = """\
Netid State  Recv-Q Send-Q Local Address:Port  Peer Address:Port Process
udp   UNCONN 0      0            0.0.0.0:5060       0.0.0.0:*
tcp   LISTEN 0      128        127.0.0.1:5038       0.0.0.0:*
tcp   LISTEN 0      4096            [::]:22            [::]:*
"""

NETSTAT_OUTPUT = """\
Active Internet connections (only servers)
Proto Recv-Q Send-Q Local Address           Foreign Address         State
tcp        0      0 0.0.0.0:5038            0.0.0.0:*               LISTEN
tcp6       0      0 :::80                   :::*                    LISTEN
udp        0      0 0.0.0.0:5060            0.0.0.0:*
"""


class TestCheckPortListening:
    """端口监听状态检查测试"""

    def test_ss_port_listening(self):
        """测试 ss 输出中端口正在监听的场景"""
        status = check_port_listening(_result("ss -tuln", SS_OUTPUT), 5038)

        assert status.is_listening is True
        assert status.bind_address == "127.0.0.1"
        assert status.source == "ss"

    def test_ss_port_not_listening(self):
        """测试端口未监听的场景"""
        status = check_port_listening(_result("ss -tuln", SS_OUTPUT), 8088)

        assert status.is_listening is False
        assert status.process_name is None
        assert status.pid is None

    def test_udp_is_ignored(self):
        """UDP 端口不算监听"""
        status = check_port_listening(_result("ss -tuln", SS_OUTPUT), 5060)
        assert status.is_listening is False

    def test_ss_with_process(self):
        """测试带进程信息的 ss 输出"""
        stdout = 'tcp   LISTEN  0   128   *:5038   *:*   users:(("asterisk",pid=1234,fd=6))'

        status = check_port_listening(_result("ss -tulnp", stdout), 5038)

        assert status.is_listening is True
        assert status.process_name == "asterisk"
        assert status.pid == 1234
        assert status.bind_address == "*"

    def test_ss_ipv6(self):
        status = check_port_listening(_result("ss -tuln", SS_OUTPUT), 22)

        assert status.is_listening is True
        assert status.bind_address == "[::]"

    def test_netstat_port_listening(self):
        status = check_port_listening(_result("netstat -tuln", NETSTAT_OUTPUT), 5038)

        assert status.is_listening is True
        assert status.bind_address == "0.0.0.0"
        assert status.source == "netstat"

    def test_netstat_ipv6(self):
        status = check_port_listening(_result("netstat -tuln", NETSTAT_OUTPUT), 80)

        assert status.is_listening is True
        assert status.bind_address == "::"

    def test_netstat_with_process(self):
        stdout = "tcp        0      0 0.0.0.0:5038            0.0.0.0:*               LISTEN      987/asterisk"

        status = check_port_listening(_result("netstat -tulnp", stdout), 5038)

        assert status.process_name == "asterisk"
        assert status.pid == 987

    def test_port_prefix_does_not_match(self):
        """50380 不是 5038"""
        stdout = "tcp   LISTEN 0      128        127.0.0.1:50380       0.0.0.0:*"
        status = check_port_listening(_result("ss -tuln", stdout), 5038)
        assert status.is_listening is False

    def test_empty_output(self):
        status = check_port_listening(_result("ss -tuln", ""), 5038)
        assert status.is_listening is False
