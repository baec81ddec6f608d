"""
端口监听状态解析器

解析 ss -tuln 或 netstat -tuln 输出，判断指定端口是否在监听
"""
import re
from typing import List, Optional

from ...models.results import CommandResult
from .base import PortListeningStatus

SS_PROCESS_PATTERN = re.compile(r'users:\(\("([^"]+)",pid=(\d+)')
NETSTAT_PROCESS_PATTERN = re.compile(r"^(\d+)/(\S+)$")


def _local_address(fields: List[str]) -> Optional[str]:
    """
    取出本地地址列

    ss:      tcp LISTEN 0 128 127.0.0.1:5038 0.0.0.0:*
    netstat: tcp 0 0 0.0.0.0:5038 0.0.0.0:* LISTEN
    """
    if len(fields) >= 5 and fields[1] == "LISTEN":
        return fields[4]
    if len(fields) >= 6 and fields[5] == "LISTEN":
        return fields[3]
    return None


def check_port_listening(result: CommandResult, port: int) -> PortListeningStatus:
    """
    解析 ss/netstat 输出，检查 TCP 端口是否在监听

    Args:
        result: 命令执行结果
        port: 要检查的端口号

    Returns:
        PortListeningStatus: 端口监听状态信息

    示例输入:
        tcp   LISTEN  0   128   127.0.0.1:5038   0.0.0.0:*
        tcp   LISTEN  0   128   *:5038   *:*   users:(("asterisk",pid=1234,fd=6))
        tcp        0      0 0.0.0.0:5038            0.0.0.0:*               LISTEN

    解析逻辑:
        1. 只看 tcp 协议且状态为 LISTEN 的行
        2. 本地地址列的端口等于目标端口
        3. 有进程信息时提取进程名和PID
    """
    source = result.command.split()[0] if result.command else ""

    for line in result.stdout.splitlines():
        fields = line.split()
        if not fields or not fields[0].lower().startswith("tcp"):
            continue

        local = _local_address(fields)
        if local is None:
            continue
        address, _, local_port = local.rpartition(":")
        if local_port != str(port):
            continue

        process_name = None
        pid = None
        ss_match = SS_PROCESS_PATTERN.search(line)
        netstat_match = NETSTAT_PROCESS_PATTERN.match(fields[-1])
        if ss_match:
            process_name, pid = ss_match.group(1), int(ss_match.group(2))
        elif netstat_match:
            pid, process_name = int(netstat_match.group(1)), netstat_match.group(2)

        return PortListeningStatus(
            is_listening=True,
            process_name=process_name,
            pid=pid,
            bind_address=address or "*",
            source=source
        )

    # 未找到监听记录
    return PortListeningStatus(is_listening=False, source=source)
