"""
CLI命令行入口

使用Typer框架提供命令行接口

退出码:
    0  Ok / Fixed
    1  Failed
    2  参数或配置错误
"""
import asyncio
from typing import Optional

import typer
import yaml
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console

from . import __version__
from .diagnostics.reporter import ReportGenerator
from .diagnostics.workflows import BACKUP_TARGETS, AmiWorkflows, build_workflows
from .errors import AmiDoctorError
from .logging_config import setup_logging
from .models.report import DiagnosticOutcome
from .settings import load_settings
from .utils.output_formatter import OutcomeFormatter

# 加载环境变量
load_dotenv()

app = typer.Typer(
    name="amidoctor",
    help="Asterisk AMI 配置修复与诊断工具",
    add_completion=False
)
backup_app = typer.Typer(help="manager.conf / .env 备份管理")
app.add_typer(backup_app, name="backup")

console = Console()

EXIT_USAGE = 2


def _workflows(
    config: Optional[str],
    manager_conf: Optional[str],
    verbose: bool
) -> AmiWorkflows:
    """初始化日志和配置，配置错误时以退出码 2 结束"""
    setup_logging(verbose)
    try:
        settings = load_settings(config, overrides={"manager_conf": manager_conf})
    except (FileNotFoundError, yaml.YAMLError, ValidationError) as e:
        console.print(f"[red]配置错误: {e}[/red]")
        raise typer.Exit(EXIT_USAGE)
    if settings.log_file:
        setup_logging(verbose, settings.log_file)
    return build_workflows(settings)


def _finish(
    outcome: DiagnosticOutcome,
    workflows: AmiWorkflows,
    command: str,
    verbose: bool,
    as_json: bool,
    report: bool
):
    """输出诊断结果，可选生成报告，并按结果设置退出码"""
    if as_json:
        console.print_json(data=outcome.to_dict())
    else:
        OutcomeFormatter(console, verbose).format_outcome(outcome)

    if report:
        path = ReportGenerator(workflows.settings.report_dir).generate(outcome, command)
        console.print(f"[dim]报告已生成: {path}[/dim]")

    raise typer.Exit(outcome.exit_code)


ConfigOption = typer.Option(None, "--config", "-c", help="amidoctor 配置文件（YAML）")
ManagerConfOption = typer.Option(None, "--manager-conf", help="manager.conf 路径")
VerboseOption = typer.Option(False, "--verbose", "-v", help="显示详细输出和调试日志")
JsonOption = typer.Option(False, "--json", help="以 JSON 输出结果")
ReportOption = typer.Option(False, "--report", help="生成 Markdown 报告")


@app.command("fix")
def fix(
    no_reload: bool = typer.Option(False, "--no-reload", help="修改配置后不重新加载 Asterisk"),
    username: Optional[str] = typer.Option(None, "--username", "-u", help="AMI 用户名"),
    secret: Optional[str] = typer.Option(None, "--secret", "-s", help="修复时写入的 AMI secret"),
    manager_conf: Optional[str] = ManagerConfOption,
    config: Optional[str] = ConfigOption,
    verbose: bool = VerboseOption,
    as_json: bool = JsonOption,
    report: bool = ReportOption
):
    """
    检查 AMI 并自动修复

    示例:
        amidoctor fix
        amidoctor fix --secret 'n3wS3cret' --no-reload
    """
    workflows = _workflows(config, manager_conf, verbose)
    if not as_json:
        console.print("\n[bold cyan]amidoctor - AMI 检查与修复[/bold cyan]")
        console.print(f"[dim]{'='*60}[/dim]\n")

    outcome = asyncio.run(workflows.fix(
        reload=not no_reload, username=username, secret=secret
    ))
    _finish(outcome, workflows, "fix", verbose, as_json, report)


@app.command("check")
def check(
    username: Optional[str] = typer.Option(None, "--username", "-u", help="AMI 用户名"),
    manager_conf: Optional[str] = ManagerConfOption,
    config: Optional[str] = ConfigOption,
    verbose: bool = VerboseOption,
    as_json: bool = JsonOption,
    report: bool = ReportOption
):
    """
    只读检查 AMI 状态（不修改任何文件）

    示例:
        amidoctor check --verbose
    """
    workflows = _workflows(config, manager_conf, verbose)
    outcome = asyncio.run(workflows.check(username=username))
    _finish(outcome, workflows, "check", verbose, as_json, report)


@app.command("test")
def test(
    host: Optional[str] = typer.Option(None, "--host", help="AMI 地址"),
    port: Optional[int] = typer.Option(None, "--port", "-p", min=1, max=65535, help="AMI 端口"),
    username: Optional[str] = typer.Option(None, "--username", "-u", help="AMI 用户名"),
    secret: Optional[str] = typer.Option(None, "--secret", "-s", help="AMI secret"),
    manager_conf: Optional[str] = ManagerConfOption,
    config: Optional[str] = ConfigOption,
    verbose: bool = VerboseOption,
    as_json: bool = JsonOption
):
    """
    测试 AMI 登录

    未指定的参数依次从 .env 和 manager.conf 中读取

    示例:
        amidoctor test
        amidoctor test --username admin --secret 'hunter2'
    """
    workflows = _workflows(config, manager_conf, verbose)
    try:
        result = asyncio.run(workflows.test(host=host, port=port, username=username, secret=secret))
    except AmiDoctorError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if as_json:
        console.print_json(data=result.to_dict())
    else:
        OutcomeFormatter(console, verbose).format_protocol(result)
    raise typer.Exit(0 if result.authenticated else 1)


@app.command("diag")
def diag(
    manager_conf: Optional[str] = ManagerConfOption,
    config: Optional[str] = ConfigOption,
    verbose: bool = VerboseOption,
    as_json: bool = JsonOption
):
    """
    收集 AMI 诊断信息

    示例:
        amidoctor diag
    """
    workflows = _workflows(config, manager_conf, verbose)
    snapshot = asyncio.run(workflows.diag())

    if as_json:
        console.print_json(data=snapshot)
    else:
        OutcomeFormatter(console, verbose).format_diag(snapshot)

    connection = snapshot.get("connection")
    raise typer.Exit(0 if connection and connection["status"] == "Authenticated" else 1)


@app.command("configure")
def configure(
    username: Optional[str] = typer.Option(None, "--username", "-u", help="AMI 用户名（默认 admin）"),
    secret: Optional[str] = typer.Option(None, "--secret", "-s", help="AMI secret"),
    no_reload: bool = typer.Option(False, "--no-reload", help="写入后不重启 Asterisk"),
    manager_conf: Optional[str] = ManagerConfOption,
    config: Optional[str] = ConfigOption,
    verbose: bool = VerboseOption,
    as_json: bool = JsonOption,
    report: bool = ReportOption
):
    """
    写入 AMI 用户配置并同步 .env

    示例:
        amidoctor configure --username admin --secret 'n3wS3cret'
    """
    workflows = _workflows(config, manager_conf, verbose)
    outcome = asyncio.run(workflows.configure(
        username=username, secret=secret, reload=not no_reload
    ))
    _finish(outcome, workflows, "configure", verbose, as_json, report)


def _validate_target(target: str) -> str:
    if target not in BACKUP_TARGETS:
        raise typer.BadParameter(f"可选: {', '.join(BACKUP_TARGETS)}")
    return target


TargetOption = typer.Option("manager", "--target", "-t", callback=_validate_target, help="manager 或 env")


@backup_app.command("create")
def backup_create(
    target: str = TargetOption,
    manager_conf: Optional[str] = ManagerConfOption,
    config: Optional[str] = ConfigOption,
    verbose: bool = VerboseOption
):
    """为 manager.conf 或 .env 创建快照"""
    workflows = _workflows(config, manager_conf, verbose)
    try:
        handle = workflows.backup_create(target)
    except AmiDoctorError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]OK[/green] 快照: {handle.snapshot_path}")


@backup_app.command("list")
def backup_list(
    target: str = TargetOption,
    manager_conf: Optional[str] = ManagerConfOption,
    config: Optional[str] = ConfigOption,
    verbose: bool = VerboseOption
):
    """列出快照（最新的在前）"""
    workflows = _workflows(config, manager_conf, verbose)
    OutcomeFormatter(console, verbose).format_backups(workflows.backup_list(target))


@backup_app.command("restore")
def backup_restore(
    name: Optional[str] = typer.Argument(None, help="快照文件名，默认最新的快照"),
    target: str = TargetOption,
    manager_conf: Optional[str] = ManagerConfOption,
    config: Optional[str] = ConfigOption,
    verbose: bool = VerboseOption
):
    """用快照恢复 manager.conf 或 .env（恢复前会先备份当前内容）"""
    workflows = _workflows(config, manager_conf, verbose)
    try:
        previous = workflows.backup_restore(name, target)
    except AmiDoctorError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]OK[/green] 已恢复 {workflows.backup_target(target)}")
    if previous:
        console.print(f"[dim]恢复前的内容已备份为 {previous.name}[/dim]")


@backup_app.command("cleanup")
def backup_cleanup(
    keep: int = typer.Option(5, "--keep", "-k", min=0, help="保留最近的快照数量"),
    target: str = TargetOption,
    manager_conf: Optional[str] = ManagerConfOption,
    config: Optional[str] = ConfigOption,
    verbose: bool = VerboseOption
):
    """删除旧快照"""
    workflows = _workflows(config, manager_conf, verbose)
    removed = workflows.backup_cleanup(keep, target)
    console.print(f"[green]OK[/green] 已删除 {len(removed)} 个旧快照")


@app.command("version")
def version():
    """显示版本信息"""
    console.print(f"[bold cyan]amidoctor[/bold cyan] v{__version__}")
    console.print("Asterisk AMI 配置修复与诊断工具")


def main():
    """主入口函数"""
    app()


if __name__ == "__main__":
    main()
