"""
执行结果相关数据模型
定义外部命令执行结果和诊断步骤结果
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class CommandResult:
    """
    命令执行结果

    记录单个本地命令（systemctl、ss、asterisk -rx 等）的执行结果
    """
    command: str                        # 执行的命令
    success: bool                       # 是否执行成功
    stdout: str                         # 标准输出
    stderr: str                         # 标准错误输出
    exit_code: int                      # 退出码
    execution_time: float               # 执行耗时（秒）
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        status = "OK" if self.success else "FAIL"
        return (f"[{status}] {self.command} "
               f"(exit={self.exit_code}, time={self.execution_time:.2f}s)")

    @classmethod
    def from_argv(
        cls,
        argv: List[str],
        exit_code: int,
        stdout: str = "",
        stderr: str = "",
        execution_time: float = 0.0
    ) -> "CommandResult":
        """根据参数列表和退出码构建结果"""
        return cls(
            command=" ".join(argv),
            success=exit_code == 0,
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
            execution_time=execution_time
        )

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式"""
        return {
            "command": self.command,
            "success": self.success,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exit_code": self.exit_code,
            "execution_time": self.execution_time,
            "timestamp": self.timestamp.isoformat()
        }


@dataclass(frozen=True)
class StepResult:
    """
    诊断步骤结果

    记录状态机中单个步骤的执行情况，构造后不可修改
    """
    step_number: int                    # 步骤编号
    step_name: str                      # 步骤名称（CheckRunning / TestAuth ...）
    success: bool                       # 步骤是否通过
    message: str = ""                   # 人类可读的说明
    fix_applied: bool = False           # 本步骤是否执行了修复动作
    error_code: Optional[str] = None    # 失败时的错误码
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        status = "OK" if self.success else "FAIL"
        return f"[{status}] Step {self.step_number}: {self.step_name}"

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式"""
        return {
            "step_number": self.step_number,
            "step_name": self.step_name,
            "success": self.success,
            "message": self.message,
            "fix_applied": self.fix_applied,
            "error_code": self.error_code,
            "metadata": dict(self.metadata)
        }
