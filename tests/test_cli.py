"""
Tests for the ``orderlink`` command line.
"""

import os

import pytest
import yaml
from click.testing import CliRunner

from orderlink import __version__
from orderlink.auth import TokenKind, TokenManager
from orderlink.cli import cli


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    for key in list(os.environ):
        if key.startswith("OL_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "orderlink.yaml"
    path.write_text(yaml.safe_dump({
        "auth": {"access_secret": "cli-access", "admin_secret": "cli-admin"},
        "database": {"url": f"sqlite:///{tmp_path / 'gateway.db'}"},
    }))
    return str(path)


class TestCli:
    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"], obj={})
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_init_db(self, config_file, tmp_path):
        result = CliRunner().invoke(cli, ["-c", config_file, "init-db"], obj={})
        assert result.exit_code == 0, result.output
        assert "created chat_messages" in result.output
        assert (tmp_path / "gateway.db").exists()

    def test_issue_token(self, config_file):
        result = CliRunner().invoke(cli, ["-c", config_file, "issue-token", "C1"], obj={})
        assert result.exit_code == 0, result.output
        token = result.output.strip().splitlines()[-1]
        claims = TokenManager("cli-access", "cli-admin").verify(token, TokenKind.ACCESS)
        assert claims["sub"] == "C1"

    def test_issue_admin_token(self, config_file):
        result = CliRunner().invoke(
            cli, ["-c", config_file, "issue-token", "--admin", "root@orderlink.test"], obj={}
        )
        assert result.exit_code == 0, result.output
        token = result.output.strip().splitlines()[-1]
        assert TokenManager("cli-access", "cli-admin").verify(token, TokenKind.ADMIN)

    def test_missing_secrets(self):
        result = CliRunner().invoke(cli, ["issue-token", "C1"], obj={})
        assert result.exit_code != 0

    def test_serve(self, config_file, monkeypatch):
        calls = []
        monkeypatch.setattr(
            "orderlink.server.OrderLinkServer.run",
            lambda self, **kwargs: calls.append(kwargs),
        )
        result = CliRunner().invoke(
            cli, ["-c", config_file, "serve", "--port", "9001", "--log-level", "debug"], obj={}
        )
        assert result.exit_code == 0, result.output
        assert calls == [{"host": None, "port": 9001, "reload": None, "log_level": "debug"}]

    def test_env_overrides_file(self, config_file, monkeypatch):
        calls = []

        def fake_run(self, **kwargs):
            calls.append(self.config.server.port)

        monkeypatch.setenv("OL_SERVER__PORT", "9100")
        monkeypatch.setattr("orderlink.server.OrderLinkServer.run", fake_run)
        result = CliRunner().invoke(cli, ["-c", config_file, "serve"], obj={})
        assert result.exit_code == 0, result.output
        assert calls == [9100]
