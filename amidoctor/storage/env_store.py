"""
.env 凭据镜像

应用通过 .env 中的 ASTERISK_AMI_* 变量连接 AMI，这里负责定位、读取、
比较和就地更新这些变量。读取使用 python-dotenv；写入时只替换目标键所在行，
其余内容保持原样。
"""
import logging
import re
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Union

from dotenv import dotenv_values

from ..models.credential import Credential
from .atomic import atomic_write_bytes
from .backup_store import BackupStore

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_PATHS = [
    "/opt/rayanpbx/.env",
    "/usr/local/rayanpbx/.env",
    "/etc/rayanpbx/.env",
]
DEFAULT_PREFIX = "ASTERISK_AMI_"
PROJECT_MARKER = "VERSION"
MAX_ROOT_DEPTH = 5

# 凭据字段 -> 变量名后缀
CREDENTIAL_FIELDS = ("host", "port", "username", "secret")

NEW_FILE_HEADER = [
    "# RayanPBX Configuration",
    "# Generated by amidoctor",
    "",
    "# Asterisk AMI Configuration",
]

UNQUOTED_VALUE_PATTERN = re.compile(r"^[A-Za-z0-9_./:@%+,\-=]*$")


def format_env_value(value: str) -> str:
    """
    需要时给值加引号

    含 $ 的值用单引号包裹，python-dotenv 不会展开单引号中的 ${...}
    """
    if UNQUOTED_VALUE_PATTERN.match(value):
        return value
    if "$" in value:
        escaped = value.replace("\\", "\\\\").replace("'", "\\'")
        return f"'{escaped}'"
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def is_consistent(mirror: Mapping[str, Optional[str]], credential: Credential) -> bool:
    """
    判断 .env 镜像是否与 manager.conf 中的凭据一致

    secret 必须存在且相同；host/port/username 只在镜像中存在时才比较

    Args:
        mirror: 字段名（host/port/username/secret）到值的映射
        credential: manager.conf 中解析出的凭据
    """
    if not mirror.get("secret") or mirror["secret"] != credential.secret:
        return False
    expected = {
        "host": credential.host,
        "port": str(credential.port),
        "username": credential.username,
    }
    for field, value in expected.items():
        actual = mirror.get(field)
        if actual and actual != value:
            return False
    return True


class EnvironmentStore:
    """
    .env 文件读写

    Args:
        backup_store: 修改已有文件前用于备份
        search_paths: 系统级 .env 搜索路径（按优先级）
        prefix: 变量名前缀
        start_dir: 查找项目根目录的起点，默认当前目录
        env_file: 显式指定的 .env 路径，设置后不再自动查找
    """

    def __init__(
        self,
        backup_store: BackupStore,
        search_paths: Optional[Sequence[Union[str, Path]]] = None,
        prefix: str = DEFAULT_PREFIX,
        start_dir: Optional[Union[str, Path]] = None,
        env_file: Optional[Union[str, Path]] = None
    ):
        self.backup_store = backup_store
        self.search_paths = [Path(p) for p in (DEFAULT_SEARCH_PATHS if search_paths is None else search_paths)]
        self.prefix = prefix
        self.start_dir = Path(start_dir) if start_dir else None
        self.env_file = Path(env_file) if env_file else None

    def key(self, field: str) -> str:
        return f"{self.prefix}{field.upper()}"

    def _cwd(self) -> Path:
        return self.start_dir or Path.cwd()

    def find_project_root(self) -> Path:
        """向上最多查找 5 层带 VERSION 文件的目录，找不到则返回起始目录"""
        current = self._cwd().resolve()
        for _ in range(MAX_ROOT_DEPTH):
            if (current / PROJECT_MARKER).is_file():
                return current
            if current.parent == current:
                break
            current = current.parent
        return self._cwd().resolve()

    def candidates(self) -> List[Path]:
        """按优先级排列的候选 .env 路径"""
        paths = list(self.search_paths)
        paths.append(self.find_project_root() / ".env")
        paths.append(self._cwd().resolve() / ".env")
        return paths

    def find_env_file(self) -> Path:
        """
        定位 .env 文件

        Returns:
            第一个存在的候选文件；都不存在时返回项目根目录下的 .env（用于新建）
        """
        if self.env_file is not None:
            return self.env_file
        for candidate in self.candidates():
            if candidate.is_file():
                return candidate
        return self.find_project_root() / ".env"

    def read(self, path: Optional[Union[str, Path]] = None) -> Dict[str, Optional[str]]:
        env_path = Path(path) if path else self.find_env_file()
        if not env_path.is_file():
            return {}
        return dict(dotenv_values(env_path, interpolate=False))

    def read_mirror(self, path: Optional[Union[str, Path]] = None) -> Dict[str, Optional[str]]:
        """读取 AMI 相关字段，返回 {host, port, username, secret}"""
        values = self.read(path)
        return {field: values.get(self.key(field)) for field in CREDENTIAL_FIELDS}

    def read_credential(self, path: Optional[Union[str, Path]] = None) -> Optional[Credential]:
        """
        从 .env 构造凭据

        Returns:
            username 和 secret 都存在时返回 Credential，否则 None
        """
        mirror = self.read_mirror(path)
        if not mirror["username"] or not mirror["secret"]:
            return None
        kwargs = {"username": mirror["username"], "secret": mirror["secret"]}
        if mirror["host"]:
            kwargs["host"] = mirror["host"]
        if mirror["port"]:
            try:
                kwargs["port"] = int(mirror["port"])
            except ValueError:
                logger.warning("%s 不是合法端口: %s", self.key("port"), mirror["port"])
        return Credential(**kwargs)

    def is_consistent(self, credential: Credential, path: Optional[Union[str, Path]] = None) -> bool:
        return is_consistent(self.read_mirror(path), credential)

    def update(self, values: Mapping[str, str], path: Optional[Union[str, Path]] = None) -> bool:
        """
        就地更新变量

        已存在的键原地替换，缺失的键追加到文件末尾，其他行不动。
        内容无变化时不写盘；修改已有文件前先备份。

        Args:
            values: 变量名到值的映射
            path: .env 路径，默认自动定位

        Returns:
            是否写入了文件
        """
        env_path = Path(path) if path else self.find_env_file()

        if not env_path.exists():
            lines = list(NEW_FILE_HEADER)
            lines.extend(f"{key}={format_env_value(value)}" for key, value in values.items())
            atomic_write_bytes(env_path, ("\n".join(lines) + "\n").encode("utf-8"), mode=0o600)
            logger.info("已创建 .env 文件: %s", env_path)
            return True

        current = self.read(env_path)
        if all(current.get(key) == value for key, value in values.items()):
            logger.debug(".env 内容无变化: %s", env_path)
            return False

        original = env_path.read_bytes()
        text = original.decode("utf-8", errors="surrogateescape")
        lines = text.splitlines(keepends=True)
        pending = dict(values)

        for index, line in enumerate(lines):
            content = line.rstrip("\r\n")
            eol = line[len(content):]
            match = re.match(r"^(\s*(?:export\s+)?)([A-Za-z_][A-Za-z0-9_.]*)\s*=", content)
            if not match or match.group(2) not in values:
                continue
            # 重复定义的键全部替换，dotenv 以最后一次出现为准
            key = match.group(2)
            pending.pop(key, None)
            lines[index] = f"{match.group(1)}{key}={format_env_value(values[key])}{eol}"

        if pending:
            if lines and not lines[-1].endswith(("\n", "\r")):
                lines[-1] += "\n"
            lines.extend(f"{key}={format_env_value(value)}\n" for key, value in pending.items())

        updated = "".join(lines).encode("utf-8", errors="surrogateescape")
        if updated == original:
            logger.debug(".env 内容无变化: %s", env_path)
            return False

        self.backup_store.backup(env_path)
        atomic_write_bytes(env_path, updated)
        logger.info("已更新 .env 文件: %s", env_path)
        return True

    def write_credential(self, credential: Credential, path: Optional[Union[str, Path]] = None) -> bool:
        """把凭据的四个字段全部写入 .env"""
        values = {
            self.key("host"): credential.host,
            self.key("port"): str(credential.port),
            self.key("username"): credential.username,
            self.key("secret"): credential.secret,
        }
        return self.update(values, path)
