"""
运行互斥锁

同一个 manager.conf 同一时间只允许一个修复任务。使用 fcntl.flock
在旁路锁文件上加非阻塞排他锁，拿不到锁立即失败
"""
import fcntl
import logging
import os
from pathlib import Path
from typing import Union

from ..errors import ConcurrentRunError

logger = logging.getLogger(__name__)


def lock_path_for(path: Union[str, Path]) -> Path:
    """配置文件对应的锁文件路径，如 /etc/asterisk/.manager.conf.amidoctor.lock"""
    target = Path(path)
    return target.parent / f".{target.name}.amidoctor.lock"


class RunLock:
    """
    基于 flock 的咨询锁

    用法:
        with RunLock(lock_path_for("/etc/asterisk/manager.conf")):
            ...
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._handle = None

    @property
    def locked(self) -> bool:
        return self._handle is not None

    def acquire(self) -> "RunLock":
        """
        获取锁

        Raises:
            ConcurrentRunError: 已有其他进程持有该锁
        """
        if self._handle is not None:
            return self

        self.path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.path, "a+", encoding="utf-8")
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as e:
            handle.close()
            raise ConcurrentRunError(
                "另一个修复任务正在运行",
                detail=str(self.path)
            ) from e

        handle.seek(0)
        handle.truncate()
        handle.write(f"pid={os.getpid()}\n")
        handle.flush()
        self._handle = handle
        logger.debug("已获取运行锁: %s", self.path)
        return self

    def release(self) -> None:
        handle = self._handle
        if handle is None:
            return
        self._handle = None
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        finally:
            handle.close()
        logger.debug("已释放运行锁: %s", self.path)

    def __enter__(self) -> "RunLock":
        return self.acquire()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
