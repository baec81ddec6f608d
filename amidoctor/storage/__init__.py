"""
文件存储：备份快照、.env 镜像、原子写与运行锁
"""
from .atomic import atomic_write_bytes
from .backup_store import BackupStore
from .env_store import EnvironmentStore, is_consistent
from .run_lock import RunLock, lock_path_for

__all__ = [
    "atomic_write_bytes",
    "BackupStore",
    "EnvironmentStore",
    "is_consistent",
    "RunLock",
    "lock_path_for",
]
