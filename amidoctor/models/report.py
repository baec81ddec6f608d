"""
诊断结果数据模型
定义一次诊断/修复运行的最终输出
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .results import StepResult


class DiagnosticStatus(str, Enum):
    """诊断最终状态"""
    OK = "Ok"              # 无需修复即可认证
    FIXED = "Fixed"        # 修复后认证成功
    FAILED = "Failed"      # 未解决


@dataclass(frozen=True)
class DiagnosticOutcome:
    """
    诊断结果

    每次控制器运行生成一个，构造后不可修改，由 CLI/API 负责展示
    """
    status: DiagnosticStatus
    steps: Tuple[StepResult, ...] = ()
    failing_step: Optional[str] = None   # 失败时标识出问题的步骤
    cause: str = ""                      # 人类可读的失败原因
    error_code: Optional[str] = None     # 失败原因对应的错误码
    username: Optional[str] = None
    masked_secret: Optional[str] = None
    total_time: float = 0.0
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        # 允许传入列表，统一转为元组
        object.__setattr__(self, "steps", tuple(self.steps))

    def __str__(self) -> str:
        if self.status == DiagnosticStatus.FAILED:
            return f"{self.status.value} @ {self.failing_step}: {self.cause}"
        return f"{self.status.value} ({len(self.steps)} steps, {self.total_time:.1f}s)"

    @property
    def succeeded(self) -> bool:
        return self.status in (DiagnosticStatus.OK, DiagnosticStatus.FIXED)

    @property
    def exit_code(self) -> int:
        """CLI 退出码：Ok/Fixed 为 0，Failed 为 1"""
        return 0 if self.succeeded else 1

    @property
    def fixes_applied(self) -> int:
        return sum(1 for step in self.steps if step.fix_applied)

    def step(self, name: str) -> Optional[StepResult]:
        """按名称查找最后一次出现的步骤"""
        for step in reversed(self.steps):
            if step.step_name == name:
                return step
        return None

    def to_markdown(self) -> str:
        """
        生成Markdown格式的报告

        Returns:
            完整的Markdown报告字符串
        """
        status_icon = "✅" if self.succeeded else "❌"

        md = f"""# AMI 诊断报告

**创建时间**: {self.created_at.strftime('%Y-%m-%d %H:%M:%S')}
**耗时**: {self.total_time:.1f}秒
**状态**: {status_icon} {self.status.value}
"""
        if self.username:
            md += f"**AMI 用户**: {self.username}\n"
        if self.masked_secret:
            md += f"**Secret**: {self.masked_secret}\n"

        if self.status == DiagnosticStatus.FAILED:
            md += "\n---\n\n## 失败原因\n\n"
            md += f"**步骤**: {self.failing_step}\n\n"
            md += f"**原因**: {self.cause}\n"

        md += "\n---\n\n## 步骤详情\n\n"
        for step in self.steps:
            status = "✅" if step.success else "❌"
            md += f"### Step {step.step_number}: {step.step_name} {status}\n\n"
            if step.message:
                md += f"{step.message}\n\n"
            if step.fix_applied:
                md += "**已执行修复**\n\n"
            if step.metadata:
                md += f"**详情**: {step.metadata}\n\n"
            md += "---\n\n"

        return md

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式"""
        return {
            "status": self.status.value,
            "steps": [step.to_dict() for step in self.steps],
            "failing_step": self.failing_step,
            "cause": self.cause,
            "error_code": self.error_code,
            "username": self.username,
            "masked_secret": self.masked_secret,
            "total_time": self.total_time,
            "created_at": self.created_at.isoformat()
        }
