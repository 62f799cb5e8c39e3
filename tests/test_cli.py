import json

import pytest

from circuitry_mcp import cli
from circuitry_mcp.server import VERSION


@pytest.fixture(autouse=True)
def config_home(tmp_path, monkeypatch):
    monkeypatch.setenv("CIRCUITRY_CONFIG_DIR", str(tmp_path))
    monkeypatch.delenv("CIRCUITRY_ESERVER_URL", raising=False)
    monkeypatch.delenv("CIRCUITRY_ACCESS_KEY", raising=False)
    return tmp_path


@pytest.fixture
def served(monkeypatch):
    calls = []
    monkeypatch.setattr(cli, "run", lambda: calls.append("run"))
    return calls


def _answers(monkeypatch, url, key, reachable=True):
    monkeypatch.setattr("builtins.input", lambda prompt="": url)
    monkeypatch.setattr(cli.getpass, "getpass", lambda prompt="": key)
    monkeypatch.setattr(cli.PeerChannel, "probe", lambda self: reachable)


def test_mask():
    assert cli._mask("") == "(not set)"
    assert cli._mask("short") == "*****"
    assert cli._mask("abcd1234wxyz") == "abcd****wxyz"


def test_version_command(capsys, served):
    assert cli.main(["version"]) == 0
    assert capsys.readouterr().out.strip() == VERSION
    assert served == []


def test_version_flag(capsys):
    with pytest.raises(SystemExit) as exc:
        cli.main(["--version"])
    assert exc.value.code == 0
    assert VERSION in capsys.readouterr().out


def test_help_lists_environment(capsys, served):
    assert cli.main(["help"]) == 0
    out = capsys.readouterr().out
    assert "CIRCUITRY_ACCESS_KEY" in out
    assert served == []


@pytest.mark.parametrize("argv", [[], ["serve"], ["whatever"]])
def test_default_and_unknown_commands_serve(argv, served):
    assert cli.main(argv) == 0
    assert served == ["run"]


def test_status_unconfigured(capsys, config_home):
    assert cli.main(["status"]) == 0
    out = capsys.readouterr().out
    assert str(config_home / "mcp-config.json") in out
    assert "http://localhost:3030" in out
    assert "(not set)" in out
    assert "Configured:   no" in out
    assert "circuitry-mcp setup" in out


def test_setup_saves_config(capsys, monkeypatch, config_home):
    _answers(monkeypatch, "http://127.0.0.1:4040/", "secret-access-key")
    assert cli.main(["setup"]) == 0
    saved = json.loads((config_home / "mcp-config.json").read_text())
    assert saved == {"eserverUrl": "http://127.0.0.1:4040", "accessKey": "secret-access-key",
                     "configured": True}
    assert "EServer reachable" in capsys.readouterr().out

    cli.main(["status"])
    out = capsys.readouterr().out
    assert "Configured:   yes" in out
    assert "secret-access-key" not in out


def test_setup_keeps_default_url_and_warns_when_unreachable(capsys, monkeypatch, config_home):
    _answers(monkeypatch, "", "k-123456789", reachable=False)
    assert cli.main(["setup"]) == 0
    saved = json.loads((config_home / "mcp-config.json").read_text())
    assert saved["eserverUrl"] == "http://localhost:3030"
    assert "not reachable" in capsys.readouterr().out


def test_setup_without_key_changes_nothing(monkeypatch, config_home):
    _answers(monkeypatch, "", "  ")
    assert cli.main(["setup"]) == 1
    assert not (config_home / "mcp-config.json").exists()
