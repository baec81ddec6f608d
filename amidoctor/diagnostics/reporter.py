"""
报告生成器

把诊断结果写成 Markdown 文件
"""
from pathlib import Path
from typing import Union

from ..models.report import DiagnosticOutcome


class ReportGenerator:
    """
    报告生成器

    Args:
        output_dir: 报告输出目录
    """

    def __init__(self, output_dir: Union[str, Path] = "runtime/reports"):
        self.output_dir = Path(output_dir)

    def generate(self, outcome: DiagnosticOutcome, command: str = "fix") -> str:
        """
        生成报告文件

        Args:
            outcome: 诊断结果
            command: 产生该结果的子命令，用于文件名

        Returns:
            生成的报告文件路径
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)

        filename = f"ami_{command}_{outcome.created_at.strftime('%Y%m%d_%H%M%S')}.md"
        output_path = self.output_dir / filename

        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(outcome.to_markdown())

        return str(output_path)

    def generate_summary(self, outcome: DiagnosticOutcome) -> str:
        """
        生成简要摘要（用于终端输出）

        Returns:
            摘要文本
        """
        status_icon = "[OK]" if outcome.succeeded else "[FAIL]"

        summary = f"""
{'='*60}
AMI 诊断结果
{'='*60}

状态: {status_icon} {outcome.status.value}
总耗时: {outcome.total_time:.1f}秒
修复动作: {outcome.fixes_applied}
"""
        if outcome.username:
            summary += f"AMI 用户: {outcome.username} / {outcome.masked_secret}\n"
        if not outcome.succeeded:
            summary += f"\n失败步骤: {outcome.failing_step}\n原因: {outcome.cause}\n"

        summary += "=" * 60
        return summary
