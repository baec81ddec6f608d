"""
日志配置单元测试
"""
import logging

import pytest
from rich.logging import RichHandler

from amidoctor.logging_config import LOGGER_NAME, setup_logging


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    setup_logging()


class TestSetupLogging:

    def test_console_only(self):
        logger = setup_logging()

        assert logger.name == LOGGER_NAME
        assert [type(h) for h in logger.handlers] == [RichHandler]
        assert logger.level == logging.WARNING

    def test_verbose_enables_debug(self):
        assert setup_logging(verbose=True).level == logging.DEBUG

    def test_log_file_receives_debug(self, tmp_path):
        """日志文件总是记录 DEBUG，目录不存在时自动创建"""
        log_file = tmp_path / "logs" / "amidoctor.log"

        logger = setup_logging(log_file=str(log_file))
        logging.getLogger("amidoctor.diagnostics.controller").debug("端口等待重试 %d 次", 2)
        for handler in logger.handlers:
            handler.flush()

        assert "端口等待重试 2 次" in log_file.read_text(encoding="utf-8")
        console_handler = logger.handlers[0]
        assert console_handler.level == logging.WARNING

    def test_repeated_setup_does_not_stack_handlers(self, tmp_path):
        setup_logging(log_file=str(tmp_path / "a.log"))
        logger = setup_logging()

        assert len(logger.handlers) == 1
