import json
import os
import subprocess
import sys

from agent_os_cli import main

REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
CLI_PATH = os.path.join(REPO_ROOT, "agent_os_cli.py")
BUNDLED_FILES = 9


def cli_env(home):
    env = dict(os.environ)
    env["AGENT_OS_HOME"] = str(home)
    for name in ("AGENT_OS_BASE_SOURCE", "AGENT_OS_TEAM_SOURCE", "AGENT_OS_TOOLS"):
        env.pop(name, None)
    return env


def run_cli(args, env):
    return subprocess.run([sys.executable, CLI_PATH, *args], capture_output=True, text=True, env=env)


def test_cli_install_base_project_status(tmp_path):
    home = tmp_path / "home"
    project = tmp_path / "project"
    project.mkdir()
    env = cli_env(home)

    base_result = run_cli(["install", "base"], env)
    assert base_result.returncode == 0, base_result.stderr
    assert f"- Create: {BUNDLED_FILES}" in base_result.stdout
    assert "agent-os install project" in base_result.stdout
    assert (home / "standards" / "code-style.md").exists()

    project_result = run_cli(["install", "project", "--root", str(project), "--tool", "claude-code"], env)
    assert project_result.returncode == 0, project_result.stderr
    assert (project / ".agent-os" / "standards" / "code-style.md").exists()
    assert (project / ".claude" / "commands" / "create-spec.md").exists()

    (project / ".agent-os" / "standards" / "code-style.md").write_text("team tweaks", encoding="utf-8")

    status_result = run_cli(["status", "--root", str(project), "--json"], env)
    assert status_result.returncode == 0, status_result.stderr
    payload = json.loads(status_result.stdout)
    assert payload["dry_run"] is True
    assert payload["counts"]["SkipCustomized"] == 1
    assert payload["requires_manual_merge"] == [".agent-os/standards/code-style.md"]
    assert payload["counts"]["SkipUnmodified"] == BUNDLED_FILES - 1 + 3


def test_cli_missing_base_exits_with_layer_error(tmp_path):
    project = tmp_path / "project"
    project.mkdir()

    result = run_cli(["install", "project", "--root", str(project)], cli_env(tmp_path / "missing-home"))

    assert result.returncode == 1
    assert "ERROR: Layer 'base' cannot be read" in result.stderr
    assert "Traceback" not in result.stderr


def test_cli_reports_write_failures_with_exit_code_2(tmp_path, monkeypatch, capsys):
    source = tmp_path / "src"
    (source / "standards").mkdir(parents=True)
    (source / "standards" / "a.md").write_text("a", encoding="utf-8")
    (source / "standards" / "sub").mkdir()
    (source / "standards" / "sub" / "b.md").write_text("b", encoding="utf-8")
    root = tmp_path / "root"
    (root / "standards").mkdir(parents=True)
    (root / "standards" / "sub").write_text("blocks the directory", encoding="utf-8")
    monkeypatch.delenv("AGENT_OS_TOOLS", raising=False)

    code = main(["install", "base", "--root", str(root), "--source", str(source)])

    output = capsys.readouterr().out
    assert code == 2
    assert "Failures:" in output
    assert "standards/sub/b.md" in output
    assert (root / "standards" / "a.md").read_text(encoding="utf-8") == "a"


def test_cli_reset_and_uninstall(tmp_path, monkeypatch, capsys):
    source = tmp_path / "src"
    (source / "standards").mkdir(parents=True)
    (source / "standards" / "a.md").write_text("a", encoding="utf-8")
    root = tmp_path / "root"
    monkeypatch.delenv("AGENT_OS_TOOLS", raising=False)

    assert main(["install", "base", "--root", str(root), "--source", str(source)]) == 0
    assert main(["uninstall", "--root", str(root)]) == 0
    assert not (root / "standards" / "a.md").exists()
    assert main(["reset", "--root", str(root)]) == 0
    assert "No install state found." in capsys.readouterr().out


def test_cli_corrupt_state_on_uninstall_is_reported(tmp_path, capsys):
    root = tmp_path / "root"
    root.mkdir()
    (root / ".install-state").write_text("nope", encoding="utf-8")

    code = main(["uninstall", "--root", str(root)])

    assert code == 1
    assert "agent-os reset" in capsys.readouterr().err


def test_cli_sync_on_corrupt_state_asks_for_reinstall(tmp_path, monkeypatch, capsys):
    source = tmp_path / "src"
    (source / "standards").mkdir(parents=True)
    (source / "standards" / "a.md").write_text("a", encoding="utf-8")
    root = tmp_path / "custom"
    monkeypatch.setenv("AGENT_OS_HOME", str(tmp_path / "home"))
    monkeypatch.delenv("AGENT_OS_TOOLS", raising=False)
    assert main(["install", "base", "--root", str(root), "--source", str(source)]) == 0
    capsys.readouterr()
    (root / ".install-state").write_text("{broken", encoding="utf-8")

    code = main(["sync", "--root", str(root)])

    err = capsys.readouterr().err
    assert code == 1
    assert err.startswith("ERROR: ")
    assert "agent-os install base" in err


def test_cli_status_with_unknown_stored_tool_fails_cleanly(tmp_path, monkeypatch, capsys):
    source = tmp_path / "src"
    (source / "commands").mkdir(parents=True)
    (source / "commands" / "plan.md").write_text("plan", encoding="utf-8")
    root = tmp_path / "root"
    monkeypatch.delenv("AGENT_OS_TOOLS", raising=False)
    assert main(["install", "base", "--root", str(root), "--source", str(source), "--tool", "cursor"]) == 0
    capsys.readouterr()

    state_path = root / ".install-state"
    payload = json.loads(state_path.read_text(encoding="utf-8"))
    payload["selection"]["tools"] = ["vim"]
    state_path.write_text(json.dumps(payload), encoding="utf-8")

    code = main(["status", "--root", str(root)])

    err = capsys.readouterr().err
    assert code == 1
    assert "selection/tools/0" in err
    assert "Traceback" not in err
