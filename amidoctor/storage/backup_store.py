"""
备份存储

每次修改受管文件（manager.conf、.env）之前都必须先成功备份。
快照命名为 <文件名>.<源路径摘要>.<时间戳>.backup，存放在统一的备份目录中；
源路径摘要用于区分不同目录下的同名文件。
内容相同的快照不会重复保存。
"""
import hashlib
import logging
import re
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional, Union

from ..errors import BackupFailedError, SourceNotFoundError
from ..models.backup import BackupHandle
from .atomic import atomic_write_bytes

logger = logging.getLogger(__name__)

DEFAULT_BACKUP_DIR = "/etc/asterisk/backups"
DEFAULT_KEEP = 5
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S_%f"
SNAPSHOT_SUFFIX = ".backup"


def file_checksum(path: Union[str, Path]) -> str:
    """计算文件 SHA-256"""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _path_digest(path: Path) -> str:
    return hashlib.sha256(str(path).encode("utf-8")).hexdigest()[:8]


class BackupStore:
    """
    备份快照存储

    Args:
        backup_dir: 备份目录，默认 /etc/asterisk/backups
    """

    def __init__(self, backup_dir: Union[str, Path] = DEFAULT_BACKUP_DIR):
        self.backup_dir = Path(backup_dir)

    def _prefix(self, source: Path) -> str:
        return f"{source.name}.{_path_digest(source)}."

    def _snapshot_pattern(self, source: Path) -> re.Pattern:
        return re.compile(
            re.escape(self._prefix(source)) + r"(\d{8}_\d{6}_\d{6})" + re.escape(SNAPSHOT_SUFFIX) + "$"
        )

    def _handle_for(self, source: Path, snapshot: Path, stamp: str) -> BackupHandle:
        return BackupHandle(
            source_path=source,
            snapshot_path=snapshot,
            checksum=file_checksum(snapshot),
            timestamp=datetime.strptime(stamp, TIMESTAMP_FORMAT)
        )

    def backup(self, path: Union[str, Path]) -> BackupHandle:
        """
        为文件创建快照

        Args:
            path: 源文件路径

        Returns:
            BackupHandle: 新建的快照；若已存在内容完全相同的快照则直接返回它

        Raises:
            SourceNotFoundError: 源文件不存在
            BackupFailedError: 读取源文件或写入快照失败
        """
        source = Path(path).resolve()
        if not source.is_file():
            raise SourceNotFoundError("待备份的文件不存在", detail=str(source))

        try:
            payload = source.read_bytes()
            checksum = hashlib.sha256(payload).hexdigest()

            for existing in self.list(source):
                if existing.checksum == checksum:
                    logger.debug("内容未变化，复用已有快照: %s", existing.name)
                    return existing

            stamp = datetime.now()
            snapshot = self._snapshot_path(source, stamp)
            while snapshot.exists():
                stamp += timedelta(microseconds=1)
                snapshot = self._snapshot_path(source, stamp)

            atomic_write_bytes(snapshot, payload, mode=source.stat().st_mode & 0o7777)
        except OSError as e:
            raise BackupFailedError("备份失败", detail=f"{source}: {e}") from e

        logger.info("已备份 %s -> %s", source, snapshot)
        return BackupHandle(
            source_path=source,
            snapshot_path=snapshot,
            checksum=checksum,
            timestamp=stamp
        )

    def _snapshot_path(self, source: Path, stamp: datetime) -> Path:
        return self.backup_dir / f"{self._prefix(source)}{stamp.strftime(TIMESTAMP_FORMAT)}{SNAPSHOT_SUFFIX}"

    def list(self, path: Union[str, Path]) -> List[BackupHandle]:
        """
        列出某个文件的所有快照

        Returns:
            快照列表，最新的在前
        """
        source = Path(path).resolve()
        if not self.backup_dir.is_dir():
            return []

        pattern = self._snapshot_pattern(source)
        handles = []
        for candidate in self.backup_dir.iterdir():
            match = pattern.match(candidate.name)
            if match and candidate.is_file():
                handles.append(self._handle_for(source, candidate, match.group(1)))
        handles.sort(key=lambda h: h.timestamp, reverse=True)
        return handles

    def latest(self, path: Union[str, Path]) -> Optional[BackupHandle]:
        handles = self.list(path)
        return handles[0] if handles else None

    def find(self, path: Union[str, Path], name: str) -> Optional[BackupHandle]:
        """按快照文件名查找"""
        for handle in self.list(path):
            if handle.name == name:
                return handle
        return None

    def restore(self, handle: BackupHandle, target: Optional[Union[str, Path]] = None) -> Optional[BackupHandle]:
        """
        用快照覆盖目标文件

        覆盖前先备份目标文件当前内容，备份失败则不做任何修改

        Args:
            handle: 要恢复的快照
            target: 目标文件，默认为快照的源文件

        Returns:
            目标文件被覆盖前的快照（目标文件原本不存在时为 None）

        Raises:
            SourceNotFoundError: 快照文件不存在
            BackupFailedError: 备份目标文件或写入失败
        """
        destination = Path(target) if target is not None else handle.source_path
        if not handle.snapshot_path.is_file():
            raise SourceNotFoundError("快照文件不存在", detail=str(handle.snapshot_path))

        previous = self.backup(destination) if destination.exists() else None

        try:
            atomic_write_bytes(destination, handle.snapshot_path.read_bytes())
        except OSError as e:
            raise BackupFailedError("恢复失败", detail=f"{destination}: {e}") from e

        logger.info("已从 %s 恢复 %s", handle.name, destination)
        return previous

    def cleanup(self, path: Union[str, Path], keep: int = DEFAULT_KEEP) -> List[BackupHandle]:
        """
        只保留最近的 keep 个快照

        Returns:
            被删除的快照
        """
        if keep < 0:
            raise ValueError("keep 不能为负数")

        removed = self.list(path)[keep:]
        for handle in removed:
            handle.snapshot_path.unlink()
            logger.info("已删除旧快照: %s", handle.name)
        return removed
