"""
诊断控制器

按固定的状态机检查并（可选）修复 AMI：

    CheckRunning -> CheckEnabled -> CheckPortListening -> TestAuth
        -> Ok
        -> Remediate -> Retest -> Fixed | Failed

每次运行最多执行一次修复周期。未开启自动修复时，第一个失败的检查即结束运行，
且不会修改任何文件。控制器从不向调用方抛出异常，总是返回 DiagnosticOutcome。
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Tuple

from ..conf.ami_defaults import apply_ami_defaults
from ..conf.document import ConfigDocument
from ..conf.locator import GENERAL_SECTION, endpoint, is_enabled, locate, locate_user
from ..errors import (
    AmiDoctorError,
    AmiTimeoutError,
    AuthFailedError,
    NotEnabledError,
    PortNotListeningError,
    RemediationFailedError,
    SecretNotFoundError,
    ServiceDownError,
    UnreachableError,
)
from ..models.credential import DEFAULT_AMI_HOST, DEFAULT_AMI_PORT, DEFAULT_AMI_USERNAME, Credential
from ..models.protocol import ProtocolResult, ProtocolStatus
from ..models.report import DiagnosticOutcome, DiagnosticStatus
from ..models.results import StepResult
from .interfaces import ConfigFile, CredentialMirror, PortChecker, ProtocolClient, ServiceController
from .retry import RetryPolicy, retry_until

logger = logging.getLogger(__name__)

STEP_ACQUIRE_LOCK = "AcquireLock"
STEP_CHECK_RUNNING = "CheckRunning"
STEP_CHECK_ENABLED = "CheckEnabled"
STEP_CHECK_PORT = "CheckPortListening"
STEP_TEST_AUTH = "TestAuth"
STEP_REMEDIATE = "Remediate"
STEP_RETEST = "Retest"
STEP_CONFIGURE = "Configure"
STEP_SYNC_MIRROR = "SyncMirror"

DEFAULT_SECRET = "rayanpbx_ami_secret"

CODE_SIGNAL_FAILED = "SignalFailed"
CODE_INTERNAL = "InternalError"


@dataclass
class ControllerOptions:
    """
    控制器运行参数

    Attributes:
        auto_fix: 是否允许修改配置和服务
        reload: 修改后是否通知 Asterisk 重新加载（--no-reload 关闭）
        username: 指定 AMI 用户，为 None 时使用 manager.conf 中第一个带 secret 的用户
        secret: 修复时写入的 secret，为 None 时沿用已有 secret 或 default_secret
    """
    auto_fix: bool = False
    reload: bool = True
    connect_timeout: float = 5.0
    username: Optional[str] = None
    secret: Optional[str] = None
    default_username: str = DEFAULT_AMI_USERNAME
    default_secret: str = DEFAULT_SECRET
    bindaddr: str = DEFAULT_AMI_HOST
    port: int = DEFAULT_AMI_PORT
    reserved_section: str = GENERAL_SECTION
    grace_retry: RetryPolicy = field(default_factory=lambda: RetryPolicy(max_attempts=5, delay=1.0, backoff=1.0))
    retest_retry: RetryPolicy = field(default_factory=lambda: RetryPolicy(max_attempts=3, delay=2.0, backoff=1.5))


@dataclass
class _RunState:
    """单次运行的可变状态"""
    steps: List[StepResult] = field(default_factory=list)
    current: str = STEP_ACQUIRE_LOCK
    fix_applied: bool = False
    credential: Optional[Credential] = None
    failed_signal: Optional[str] = None

    def record(
        self,
        step_name: str,
        success: bool,
        message: str = "",
        fix_applied: bool = False,
        error_code: Optional[str] = None,
        **metadata
    ) -> StepResult:
        step = StepResult(
            step_number=len(self.steps) + 1,
            step_name=step_name,
            success=success,
            message=message,
            fix_applied=fix_applied,
            error_code=error_code,
            metadata=metadata
        )
        self.steps.append(step)
        self.fix_applied = self.fix_applied or fix_applied
        level = logging.INFO if success else logging.WARNING
        logger.log(level, "%s %s", step, message)
        return step


class DiagnosticController:
    """
    AMI 诊断控制器

    Args:
        config: manager.conf 读写
        client: AMI 协议客户端
        service: Asterisk 服务控制
        ports: 端口探测
        mirror: .env 凭据镜像；提供时在认证成功后比较（自动修复时同步）
        options: 运行参数
        sleep: 重试等待函数
    """

    def __init__(
        self,
        config: ConfigFile,
        client: ProtocolClient,
        service: ServiceController,
        ports: PortChecker,
        mirror: Optional[CredentialMirror] = None,
        options: Optional[ControllerOptions] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.config = config
        self.client = client
        self.service = service
        self.ports = ports
        self.mirror = mirror
        self.options = options or ControllerOptions()
        self.sleep = sleep

    async def run(self) -> DiagnosticOutcome:
        """
        执行一次诊断

        Returns:
            DiagnosticOutcome: Ok / Fixed / Failed
        """
        return await self._guarded(self._diagnose, locked=self.options.auto_fix)

    async def configure(self) -> DiagnosticOutcome:
        """
        直接写入 AMI 配置

        使用 options.username / options.secret（缺省时用默认值）重写 manager.conf，
        除非关闭了 reload，否则重启 Asterisk 并重新认证，最后同步 .env

        Returns:
            DiagnosticOutcome: Ok（配置本已如此）/ Fixed / Failed
        """
        return await self._guarded(self._configure, locked=True)

    async def _guarded(
        self,
        body: Callable[[_RunState, float], Awaitable[DiagnosticOutcome]],
        locked: bool
    ) -> DiagnosticOutcome:
        start_time = time.monotonic()
        state = _RunState()
        try:
            if locked:
                with self.config.lock():
                    return await body(state, start_time)
            return await body(state, start_time)
        except AmiDoctorError as e:
            logger.warning("诊断中止于 %s: %s", state.current, e)
            return self._failed(state, start_time, e.code, str(e))
        except Exception as e:
            logger.exception("诊断过程中发生未预期的错误")
            return self._failed(state, start_time, CODE_INTERNAL, f"{type(e).__name__}: {e}")

    # ------------------------------------------------------------------
    # 状态机
    # ------------------------------------------------------------------

    async def _diagnose(self, state: _RunState, start_time: float) -> DiagnosticOutcome:
        auto_fix = self.options.auto_fix

        # CheckRunning
        state.current = STEP_CHECK_RUNNING
        if await self.service.is_running():
            state.record(STEP_CHECK_RUNNING, True, "Asterisk 服务正在运行")
        elif not auto_fix:
            state.record(STEP_CHECK_RUNNING, False, "Asterisk 服务未运行", error_code=ServiceDownError.code)
            raise ServiceDownError("Asterisk 服务未运行")
        else:
            started = await self.service.start()
            if not started or not await self.service.is_running():
                state.record(
                    STEP_CHECK_RUNNING, False, "Asterisk 服务启动失败",
                    error_code=ServiceDownError.code, signal="start", signal_ok=started
                )
                raise ServiceDownError("Asterisk 服务启动失败")
            state.record(
                STEP_CHECK_RUNNING, True, "已启动 Asterisk 服务", fix_applied=True, signal="start", signal_ok=True
            )

        # CheckEnabled
        state.current = STEP_CHECK_ENABLED
        doc = self.config.load()
        if is_enabled(doc):
            state.record(STEP_CHECK_ENABLED, True, "AMI 已启用")
        elif not auto_fix:
            state.record(STEP_CHECK_ENABLED, False, "manager.conf 中 AMI 未启用", error_code=NotEnabledError.code)
            raise NotEnabledError("manager.conf 中 AMI 未启用")
        else:
            doc.set_value(self.options.reserved_section, "enabled", "yes")
            backup = self.config.save(doc)
            action, signal_ok = await self._signal(state, "reload" if self.options.reload else None)
            message = "已在 manager.conf 中启用 AMI"
            state.record(
                STEP_CHECK_ENABLED, signal_ok,
                message if signal_ok else f"{message}，但 {action} 失败",
                fix_applied=True,
                error_code=None if signal_ok else CODE_SIGNAL_FAILED,
                backup=backup.name if backup else None,
                signal=action, signal_ok=signal_ok
            )

        # CheckPortListening
        state.current = STEP_CHECK_PORT
        _, port = endpoint(doc, self.options.reserved_section)
        listening = await self.ports.is_listening(port)
        if not listening and state.fix_applied:
            listening, attempts = await retry_until(
                lambda: self.ports.is_listening(port), bool, self.options.grace_retry, self.sleep
            )
            logger.debug("端口等待重试 %d 次", attempts)
        if listening:
            state.record(STEP_CHECK_PORT, True, f"端口 {port} 正在监听", port=port)
        else:
            state.record(
                STEP_CHECK_PORT, False, f"端口 {port} 未监听", error_code=PortNotListeningError.code, port=port
            )
            if not auto_fix:
                raise PortNotListeningError(f"端口 {port} 未监听")

        # TestAuth
        state.current = STEP_TEST_AUTH
        try:
            state.credential = self._locate(doc)
        except SecretNotFoundError as e:
            if not auto_fix:
                raise
            state.record(STEP_TEST_AUTH, False, str(e), error_code=e.code)
        else:
            result = await self._login(state.credential)
            state.record(
                STEP_TEST_AUTH, result.authenticated, str(result),
                error_code=None if result.authenticated else result.status.value,
                status=result.status.value
            )
            if result.authenticated:
                return await self._succeeded(state, start_time)
            if not auto_fix:
                raise protocol_error(result)

        # Remediate
        state.current = STEP_REMEDIATE
        credential = await self._remediate(state)

        # Retest
        state.current = STEP_RETEST
        result, attempts = await retry_until(
            lambda: self._login(credential), lambda r: r.authenticated, self.options.retest_retry, self.sleep
        )
        state.record(
            STEP_RETEST, result.authenticated, str(result),
            error_code=None if result.authenticated else result.status.value,
            status=result.status.value, attempts=attempts
        )
        if result.authenticated:
            return await self._succeeded(state, start_time)
        raise RemediationFailedError("修复后仍无法认证", _failure_detail(result, state))

    async def _remediate(self, state: _RunState) -> Credential:
        """备份并重写 manager.conf，然后通知 Asterisk"""
        located = state.credential
        username = self.options.username or (located.username if located else self.options.default_username)
        secret = self.options.secret or (located.secret if located else self.options.default_secret)

        doc = self.config.load()
        changed = apply_ami_defaults(
            doc, username, secret,
            port=self.options.port,
            bindaddr=self.options.bindaddr,
            general_section=self.options.reserved_section
        )
        backup = self.config.save(doc) if changed else None

        action = None
        if self.options.reload:
            action = "reload" if await self.service.is_running() else "restart"
        action, signal_ok = await self._signal(state, action)

        host, port = endpoint(doc, self.options.reserved_section)
        state.credential = Credential(username=username, secret=secret, host=host, port=port)
        message = "已重写 manager.conf 中的 AMI 配置" if changed else "manager.conf 已是期望配置"
        state.record(
            STEP_REMEDIATE, signal_ok,
            message if signal_ok else f"{message}，但 {action} 失败",
            fix_applied=True,
            error_code=None if signal_ok else CODE_SIGNAL_FAILED,
            changed=changed,
            backup=backup.name if backup else None,
            signal=action,
            signal_ok=signal_ok
        )
        return state.credential

    async def _configure(self, state: _RunState, start_time: float) -> DiagnosticOutcome:
        state.current = STEP_CONFIGURE
        username = self.options.username or self.options.default_username
        secret = self.options.secret or self.options.default_secret

        doc = self.config.load() if self.config.exists() else ConfigDocument()
        changed = apply_ami_defaults(
            doc, username, secret,
            port=self.options.port,
            bindaddr=self.options.bindaddr,
            general_section=self.options.reserved_section
        )
        backup = self.config.save(doc) if changed else None
        action, signal_ok = await self._signal(state, "restart" if self.options.reload else None)

        host, port = endpoint(doc, self.options.reserved_section)
        state.credential = Credential(username=username, secret=secret, host=host, port=port)
        message = f"已写入 AMI 用户 [{username}]" if changed else "manager.conf 已是期望配置"
        state.record(
            STEP_CONFIGURE, signal_ok,
            message if signal_ok else f"{message}，但 {action} 失败",
            fix_applied=changed,
            error_code=None if signal_ok else CODE_SIGNAL_FAILED,
            backup=backup.name if backup else None,
            signal=action,
            signal_ok=signal_ok
        )

        if not self.options.reload:
            # 没有重启时 Asterisk 仍在使用旧配置，认证测试没有意义
            return await self._succeeded(state, start_time)

        state.current = STEP_RETEST
        credential = state.credential
        result, attempts = await retry_until(
            lambda: self._login(credential), lambda r: r.authenticated, self.options.retest_retry, self.sleep
        )
        state.record(
            STEP_RETEST, result.authenticated, str(result),
            error_code=None if result.authenticated else result.status.value,
            status=result.status.value, attempts=attempts
        )
        if result.authenticated:
            return await self._succeeded(state, start_time)
        raise RemediationFailedError("写入配置后仍无法认证", _failure_detail(result, state))

    async def _succeeded(self, state: _RunState, start_time: float) -> DiagnosticOutcome:
        if self.mirror is not None:
            state.current = STEP_SYNC_MIRROR
            self._sync_mirror(state)
        status = DiagnosticStatus.FIXED if state.fix_applied else DiagnosticStatus.OK
        return self._outcome(state, start_time, status)

    def _sync_mirror(self, state: _RunState) -> None:
        """比较 .env 镜像，自动修复时把不一致的镜像重写"""
        credential = state.credential
        if self.mirror.is_consistent(credential):
            state.record(STEP_SYNC_MIRROR, True, ".env 与 manager.conf 一致")
        elif self.options.auto_fix:
            self.mirror.write_credential(credential)
            state.record(STEP_SYNC_MIRROR, True, "已同步 .env 中的 AMI 凭据", fix_applied=True)
        else:
            state.record(STEP_SYNC_MIRROR, False, ".env 与 manager.conf 不一致", error_code="MirrorMismatch")

    # ------------------------------------------------------------------
    # 辅助方法
    # ------------------------------------------------------------------

    def _locate(self, doc: ConfigDocument) -> Credential:
        if self.options.username:
            return locate_user(doc, self.options.username, self.options.reserved_section)
        return locate(doc, self.options.reserved_section)

    async def _signal(self, state: _RunState, action: Optional[str]) -> Tuple[str, bool]:
        """
        通知 Asterisk 重新加载或重启

        Args:
            action: "reload" / "restart"，None 表示跳过（--no-reload）

        Returns:
            (实际动作, 是否成功)
        """
        if action is None:
            return "skipped", True
        ok = bool(await getattr(self.service, action)())
        if not ok:
            state.failed_signal = action
            logger.warning("Asterisk %s 失败", action)
        return action, ok

    async def _login(self, credential: Credential) -> ProtocolResult:
        return await self.client.login(
            credential.host, credential.port, credential.username, credential.secret,
            timeout=self.options.connect_timeout
        )

    def _failed(self, state: _RunState, start_time: float, code: str, cause: str) -> DiagnosticOutcome:
        recorded = state.steps and state.steps[-1].step_name == state.current and not state.steps[-1].success
        if not recorded:
            state.record(state.current, False, cause, error_code=code)
        return self._outcome(state, start_time, DiagnosticStatus.FAILED, state.current, cause, code)

    def _outcome(
        self,
        state: _RunState,
        start_time: float,
        status: DiagnosticStatus,
        failing_step: Optional[str] = None,
        cause: str = "",
        error_code: Optional[str] = None
    ) -> DiagnosticOutcome:
        credential = state.credential
        return DiagnosticOutcome(
            status=status,
            steps=state.steps,
            failing_step=failing_step,
            cause=cause,
            error_code=error_code,
            username=credential.username if credential else None,
            masked_secret=credential.masked_secret if credential else None,
            total_time=time.monotonic() - start_time
        )


PROTOCOL_ERRORS = {
    ProtocolStatus.AUTH_FAILED: (AuthFailedError, "AMI 认证失败"),
    ProtocolStatus.UNREACHABLE: (UnreachableError, "无法连接 AMI"),
    ProtocolStatus.TIMEOUT: (AmiTimeoutError, "AMI 响应超时"),
}


def protocol_error(result: ProtocolResult) -> AmiDoctorError:
    """把未通过的登录结果转换为对应的异常"""
    error_class, message = PROTOCOL_ERRORS[result.status]
    return error_class(message, result.detail or None)


def _failure_detail(result: ProtocolResult, state: _RunState) -> str:
    detail = str(protocol_error(result))
    if state.failed_signal:
        detail += f"，{state.failed_signal} 失败"
    return detail
