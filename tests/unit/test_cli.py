"""
CLI 单元测试

通过替换 build_workflows 注入使用假服务和假客户端的工作流
"""
from pathlib import Path

import pytest
from typer.testing import CliRunner

from amidoctor import cli
from amidoctor.conf.document import parse
from amidoctor.logging_config import setup_logging
from conftest import FakeClient

runner = CliRunner()


@pytest.fixture(autouse=True)
def fake_workflows(monkeypatch, workflows):
    monkeypatch.delenv("AMIDOCTOR_CONFIG", raising=False)
    monkeypatch.setattr(cli, "build_workflows", lambda settings: workflows)
    return workflows


class TestCommands:

    def test_version(self):
        result = runner.invoke(cli.app, ["version"])

        assert result.exit_code == 0
        assert "amidoctor" in result.output

    def test_check_json(self):
        result = runner.invoke(cli.app, ["check", "--json"])

        assert result.exit_code == 0
        assert '"status": "Ok"' in result.output

    def test_check_table(self):
        result = runner.invoke(cli.app, ["check", "--verbose"])
        assert result.exit_code == 0

    def test_fix(self, fake_workflows):
        result = runner.invoke(cli.app, ["fix", "--json"])

        assert result.exit_code == 0
        assert '"status": "Fixed"' in result.output
        assert fake_workflows.env.read_credential().secret == "hunter2"

    def test_fix_failure_exit_code(self, fake_workflows):
        fake_workflows.client = FakeClient(accepted_secret="never-matches")

        result = runner.invoke(cli.app, ["fix", "--secret", "n3w", "--no-reload"])

        assert result.exit_code == 1
        assert "reload" not in fake_workflows.service.calls

    def test_fix_report(self, fake_workflows):
        result = runner.invoke(cli.app, ["fix", "--report"])

        assert result.exit_code == 0
        reports = list(Path(fake_workflows.settings.report_dir).glob("ami_fix_*.md"))
        assert len(reports) == 1

    def test_login_test(self):
        result = runner.invoke(cli.app, ["test", "--username", "admin", "--secret", "hunter2"])
        assert result.exit_code == 0

    def test_login_test_wrong_secret(self):
        result = runner.invoke(cli.app, ["test", "--username", "admin", "--secret", "wrong", "--json"])

        assert result.exit_code == 1
        assert '"status": "AuthFailed"' in result.output
        assert "wrong" not in result.output

    def test_login_test_unknown_user(self):
        result = runner.invoke(cli.app, ["test", "--username", "nobody"])
        assert result.exit_code == 1

    def test_diag(self):
        result = runner.invoke(cli.app, ["diag", "--json"])

        assert result.exit_code == 0
        assert '"version": "20.5.0"' in result.output
        assert "hunter2" not in result.output

    def test_configure(self, manager_conf):
        result = runner.invoke(cli.app, ["configure", "--secret", "n3w", "--no-reload"])

        assert result.exit_code == 0
        assert parse(manager_conf.read_bytes()).get_value("admin", "secret") == "n3w"

    def test_log_file_from_config(self, tmp_path):
        log_file = tmp_path / "logs" / "amidoctor.log"
        config = tmp_path / "amidoctor.yaml"
        config.write_text(f"log_file: {log_file}\n", encoding="utf-8")

        try:
            result = runner.invoke(cli.app, ["check", "--config", str(config)])
        finally:
            setup_logging()

        assert result.exit_code == 0
        assert "CheckRunning" in log_file.read_text(encoding="utf-8")

    def test_missing_config_file(self, tmp_path):
        result = runner.invoke(cli.app, ["check", "--config", str(tmp_path / "nope.yaml")])
        assert result.exit_code == 2


class TestBackupCommands:

    def test_create_list_restore_cleanup(self, manager_conf):
        original = manager_conf.read_bytes()

        assert runner.invoke(cli.app, ["backup", "create"]).exit_code == 0
        manager_conf.write_text("[general]\nenabled = no\n", encoding="utf-8")

        listed = runner.invoke(cli.app, ["backup", "list"])
        assert listed.exit_code == 0

        restored = runner.invoke(cli.app, ["backup", "restore"])
        assert restored.exit_code == 0
        assert manager_conf.read_bytes() == original

        cleaned = runner.invoke(cli.app, ["backup", "cleanup", "--keep", "1"])
        assert cleaned.exit_code == 0

    def test_restore_without_snapshot(self):
        result = runner.invoke(cli.app, ["backup", "restore"])
        assert result.exit_code == 1

    def test_unknown_target(self):
        result = runner.invoke(cli.app, ["backup", "list", "--target", "dialplan"])
        assert result.exit_code == 2
