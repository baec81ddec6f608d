"""
终端输出格式化器

用 rich 表格展示诊断结果、登录测试、诊断快照和备份列表，支持 verbose 和默认两种模式
"""
from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..models.backup import BackupHandle
from ..models.protocol import ProtocolResult
from ..models.report import DiagnosticOutcome, DiagnosticStatus

STATUS_STYLES = {
    DiagnosticStatus.OK: "green",
    DiagnosticStatus.FIXED: "yellow",
    DiagnosticStatus.FAILED: "red",
}


def _yes_no(value: Any) -> str:
    if value is None:
        return "[dim]-[/dim]"
    return "[green]是[/green]" if value else "[red]否[/red]"


class OutcomeFormatter:
    """诊断输出格式化器"""

    def __init__(self, console: Console, verbose: bool = False):
        """
        初始化格式化器

        Args:
            console: rich 控制台
            verbose: 是否启用详细模式
        """
        self.console = console
        self.verbose = verbose

    def format_outcome(self, outcome: DiagnosticOutcome):
        """打印步骤表格和最终状态"""
        table = Table(title="AMI 诊断步骤", show_lines=False)
        table.add_column("#", justify="right", style="dim")
        table.add_column("步骤", style="cyan")
        table.add_column("结果")
        table.add_column("说明")
        if self.verbose:
            table.add_column("详情", style="dim")

        for step in outcome.steps:
            result = "[green]通过[/green]" if step.success else "[red]失败[/red]"
            if step.fix_applied:
                result += " [yellow](已修复)[/yellow]"
            row = [str(step.step_number), step.step_name, result, step.message]
            if self.verbose:
                row.append(", ".join(f"{k}={v}" for k, v in step.metadata.items() if v is not None))
            table.add_row(*row)
        self.console.print(table)

        style = STATUS_STYLES[outcome.status]
        lines = [f"状态: [bold {style}]{outcome.status.value}[/bold {style}]"]
        if outcome.username:
            lines.append(f"AMI 用户: {outcome.username}  Secret: {outcome.masked_secret}")
        if outcome.status == DiagnosticStatus.FAILED:
            lines.append(f"失败步骤: {outcome.failing_step}")
            lines.append(f"原因: {outcome.cause}")
        lines.append(f"耗时: {outcome.total_time:.1f}秒")
        self.console.print(Panel("\n".join(lines), border_style=style))

    def format_protocol(self, result: ProtocolResult):
        """打印登录测试结果"""
        style = "green" if result.authenticated else "red"
        self.console.print(
            f"[{style}]{result.status.value}[/{style}] "
            f"{result.username}@{result.host}:{result.port} ({result.elapsed:.2f}s)"
        )
        if result.detail:
            self.console.print(f"[dim]{result.detail}[/dim]")
        if self.verbose and result.raw_response:
            self.console.print(Panel(result.raw_response.strip(), title="AMI 响应", border_style=style))

    def format_diag(self, snapshot: Dict[str, Any]):
        """打印诊断快照"""
        service = snapshot["service"]
        config = snapshot["config"]
        port = snapshot["port"]
        env = snapshot["env"]

        table = Table(title="AMI 诊断信息", show_header=False)
        table.add_column("项目", style="cyan")
        table.add_column("值")

        table.add_row("服务运行", _yes_no(service["running"]))
        table.add_row("Asterisk 版本", service.get("version") or "[dim]未知[/dim]")
        table.add_row("manager.conf", f"{config['path']} ({'存在' if config['exists'] else '不存在'})")
        table.add_row("AMI 启用", _yes_no(config.get("enabled")))
        table.add_row("AMI 用户", config.get("username") or "[dim]-[/dim]")
        table.add_row("Secret", config.get("masked_secret") or "[dim]-[/dim]")
        table.add_row(f"端口 {port['port']} 监听", _yes_no(port["listening"]))
        if port.get("bind_address"):
            table.add_row("监听地址", port["bind_address"])
        table.add_row(".env", f"{env['path']} ({'存在' if env['exists'] else '不存在'})")
        for key in ("host", "port", "username", "secret"):
            table.add_row(f"  ASTERISK_AMI_{key.upper()}", env.get(key) or "[dim]未设置[/dim]")
        table.add_row(".env 与 manager.conf 一致", _yes_no(snapshot.get("consistent")))

        connection = snapshot.get("connection")
        if connection:
            style = "green" if connection["status"] == "Authenticated" else "red"
            table.add_row("连接测试", f"[{style}]{connection['status']}[/{style}]")
            if connection.get("protocol_version"):
                table.add_row("AMI 协议版本", connection["protocol_version"])
        else:
            table.add_row("连接测试", "[dim]未执行[/dim]")

        self.console.print(table)
        if config.get("error"):
            self.console.print(f"[yellow]{config['error']}[/yellow]")

    def format_backups(self, handles: List[BackupHandle]):
        """打印备份列表（最新的在前）"""
        if not handles:
            self.console.print("[yellow]没有找到备份[/yellow]")
            return

        table = Table(title="备份快照")
        table.add_column("#", justify="right", style="dim")
        table.add_column("快照", style="cyan")
        table.add_column("时间")
        table.add_column("SHA-256", style="dim")
        for index, handle in enumerate(handles, 1):
            checksum = handle.checksum if self.verbose else handle.checksum[:12]
            table.add_row(str(index), handle.name, handle.timestamp.strftime("%Y-%m-%d %H:%M:%S"), checksum)
        self.console.print(table)
