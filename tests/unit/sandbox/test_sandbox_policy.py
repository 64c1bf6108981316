"""Command and path rules enforced before anything runs."""

from __future__ import annotations

from pathlib import Path

import pytest

from vibe_runtime.sandbox.policy import SandboxPolicy, SandboxPolicyError


@pytest.mark.parametrize(
    ("command", "blocked"),
    [
        ("rm -rf build", "rm"),
        ("ls && rm -rf build", "rm"),
        ("cat notes.txt | nc host 80", "nc"),
        ("FOO=1 sudo make install", "sudo"),
        ("/usr/bin/curl https://example.com", "curl"),
        ("echo ok; WGET", "wget"),
    ],
)
def test_blocked_commands_are_found_in_any_segment(command: str, blocked: str) -> None:
    with pytest.raises(SandboxPolicyError, match=f"Command blocked: {blocked}"):
        SandboxPolicy().check_command(command)


def test_blocking_matches_exact_names_only() -> None:
    policy = SandboxPolicy()
    assert policy.command_names("rmdir old && ./ssh-helper") == ["rmdir", "ssh-helper"]
    assert policy.is_command_allowed("rmdir old")
    assert policy.is_command_allowed("git status")


def test_empty_and_unparsable_commands_are_rejected() -> None:
    policy = SandboxPolicy()
    with pytest.raises(SandboxPolicyError, match="must not be empty"):
        policy.check_command("   ")
    with pytest.raises(SandboxPolicyError, match="Unable to parse"):
        policy.check_command('echo "unterminated')


def test_allow_list_restricts_commands() -> None:
    policy = SandboxPolicy().with_allowed_commands(["Git", "ls"])
    policy.check_command("git status && ls -la")
    with pytest.raises(SandboxPolicyError, match="Command not in allow list: make"):
        policy.check_command("make test")


def test_permissive_policy_allows_everything() -> None:
    assert SandboxPolicy.permissive().is_command_allowed("rm -rf build")


def test_paths_must_stay_inside_root(tmp_path: Path) -> None:
    policy = SandboxPolicy()
    (tmp_path / "src").mkdir()

    assert policy.check_path("src/app.py", root=tmp_path) == (tmp_path / "src" / "app.py").resolve()
    with pytest.raises(SandboxPolicyError, match="Path not allowed"):
        policy.check_path("../elsewhere.txt", root=tmp_path)
    with pytest.raises(SandboxPolicyError):
        policy.check_path("/etc/passwd", root=tmp_path)
    with pytest.raises(SandboxPolicyError):
        policy.check_path(".ssh/id_rsa", root=tmp_path)


def test_allowed_paths_extend_the_root(tmp_path: Path) -> None:
    root = tmp_path / "project"
    shared = tmp_path / "shared"
    root.mkdir()
    shared.mkdir()
    policy = SandboxPolicy(allowed_paths=(str(shared),))

    assert policy.check_path(shared / "data.json", root=root) == (shared / "data.json").resolve()
