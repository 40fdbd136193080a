import logging

import pytest

from sppmon.config import effective_settings
from sppmon.console import execute_command
from sppmon.main import main


@pytest.fixture
def restore_logging():
    """main() rebinds the root handlers; put the previous ones back afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


@pytest.fixture
def orchestrator(root_dir, tmp_path, monkeypatch):
    """Points the console at the test catalog, binaries, dist and simulated hosts."""
    monkeypatch.setattr(effective_settings, "CATALOG_DIR", root_dir / "catalog")
    monkeypatch.setattr(effective_settings, "BINARIES_SOURCE_DIR", root_dir / "bin")
    monkeypatch.setattr(effective_settings, "DIST_DIR", root_dir / "dist")
    monkeypatch.setattr(effective_settings, "HOSTS_DIR", tmp_path / "hosts")
    monkeypatch.setattr(effective_settings, "REMOTE_BASE", "/sppmon")
    return tmp_path / "hosts"


def test_resolve_prints_order(orchestrator, capsys):
    assert execute_command("resolve", ["--services", "B"]) == 0
    assert capsys.readouterr().out.split() == ["A", "B"]


def test_resolve_app_defaults(orchestrator, capsys):
    assert execute_command("resolve", ["--app", "demo"]) == 0
    assert capsys.readouterr().out.split() == ["A", "B"]


def test_resolve_unknown_service_fails(orchestrator):
    assert execute_command("resolve", ["--services", "ghost"]) == 1


def test_unknown_command():
    assert execute_command("frobnicate", []) == 2


def test_deploy_then_rollback(orchestrator, capsys):
    assert execute_command("deploy", ["--app", "demo", "--env", "prod", "--targets", "h1,h2"]) == 0
    out = capsys.readouterr().out
    assert "2 succeeded, 0 failed" in out
    assert (orchestrator / "h1" / "sppmon" / "current").is_symlink()

    assert execute_command("rollback", ["--targets", "h1", "--list"]) == 0
    assert "* demo_prod_" in capsys.readouterr().out

    # Only one release: nothing to go back to.
    assert execute_command("rollback", ["--targets", "h1", "--previous"]) == 1
    assert execute_command("rollback", ["--targets", "h1", "--latest"]) == 0


def test_deploy_requires_app_and_env(orchestrator):
    assert execute_command("deploy", ["--targets", "h1"]) == 1


def test_deploy_strict_failure_publishes_nothing(orchestrator, root_dir):
    code = execute_command("deploy", ["--app", "demo", "--env", "prod", "--targets", "h1",
                                      "--services", "A,C", "--strict"])
    assert code == 1
    assert not list((root_dir / "dist").glob("*"))
    assert not (orchestrator / "h1").exists()


def test_rollback_mode_is_required(orchestrator):
    assert execute_command("rollback", ["--targets", "h1"]) == 1


def test_control_commands(orchestrator, monkeypatch, capsys):
    assert execute_command("deploy", ["--app", "demo", "--env", "prod", "--targets", "h1",
                                      "--services", "B"]) == 0
    monkeypatch.setattr(effective_settings, "BASE_DIR", orchestrator / "h1" / "sppmon")
    capsys.readouterr()

    assert execute_command("control", ["list"]) == 0
    assert capsys.readouterr().out.split()[0] == "A"

    assert execute_command("control", ["status"]) == 0
    assert "STOPPED" in capsys.readouterr().out

    assert execute_command("control", ["clean", "data"]) == 1
    assert execute_command("control", ["clean", "data", "--force", "A"]) == 0
    assert execute_command("control", ["clean", "logs"]) == 0
    assert execute_command("control", ["logs", "A"]) == 1
    assert execute_command("control", ["bogus"]) == 1


def test_main_help_and_verbose(restore_logging, capsys, monkeypatch):
    monkeypatch.setattr(effective_settings, "VERBOSE_LOGGING", False)
    assert main(["--help"]) == 0
    assert "deploy" in capsys.readouterr().out
    assert main([]) == 2
    assert main(["--verbose", "help"]) == 0
