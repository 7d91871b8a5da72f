from dataclasses import replace
from pathlib import Path

import pytest

from pipeline_coordinator.errors import ConfigurationError, FeatureNotFoundError
from pipeline_coordinator.feature import (
    FeatureService,
    feature_number,
    find_repository_root,
)
from pipeline_coordinator.integrations.process import ProcessResult
from pipeline_coordinator.integrations.vcs import GitAdapter
from pipeline_coordinator.models import Repository, Workspace, override_path_for


def _service(workspace, fake_runner, dotnet, build_status=None):
    return FeatureService(workspace, GitAdapter(fake_runner), dotnet, build_status=build_status)


def _git_calls(fake_runner, command):
    return [
        (spec.working_directory, spec.arguments)
        for spec in fake_runner.calls
        if spec.program == "git" and spec.arguments[0] == command
    ]


def _cloning(spec):
    Path(spec.arguments[-1]).mkdir(parents=True)
    return ProcessResult(code=0, stdout="", stderr="")


@pytest.fixture
def cloned(override_scenario):
    """Mark both scenario repositories as already cloned."""
    for repo in override_scenario.workspace:
        (override_scenario.feature.repository_directory(repo) / ".git").mkdir()
    return override_scenario


class TestStart:
    def test_start_sets_up_repositories_builds_and_commits(self, cloned, fake_runner, dotnet):
        s = cloned
        result = _service(s.workspace, fake_runner, dotnet).start("42")

        assert result.success
        assert [status.repository.path for status in result.repositories] == ["a", "b"]
        assert _git_calls(fake_runner, "clone") == []
        assert len(_git_calls(fake_runner, "checkout")) == 2
        assert override_path_for(s.api).exists()

        for repo in s.workspace:
            directory = s.feature.repository_directory(repo)
            ignore = (directory / ".gitignore").read_text(encoding="utf-8")
            assert "*.override.sln" in ignore
            assert "*.override.csproj" in ignore
            assert (str(directory), ("commit", "-m", "feature/story-42 start", "--allow-empty")) in (
                _git_calls(fake_runner, "commit")
            )

        restored = sorted(p.name for p in result.restored)
        assert restored == ["App.override.sln", "Contracts.override.sln"]

    def test_commits_happen_after_the_override_build(self, cloned, fake_runner, dotnet):
        _service(cloned.workspace, fake_runner, dotnet).start("42")

        commands = [" ".join(spec.argv()[:2]) for spec in fake_runner.calls]
        last_dotnet = max(i for i, c in enumerate(commands) if c.startswith("dotnet"))
        first_commit = commands.index("git commit")
        assert first_commit > last_dotnet

    def test_clone_failure_is_isolated(self, features_root, fake_runner, dotnet):
        workspace = Workspace(
            root_directory=features_root,
            repositories=(
                Repository("good", "https://example.com/good.git", "Good"),
                Repository("bad", "https://example.com/bad.git", "Bad"),
            ),
        )
        fake_runner.respond("git", "clone", handler=_cloning)
        fake_runner.respond("git", "clone", "https://example.com/bad.git", code=128, stderr="denied")

        result = _service(workspace, fake_runner, dotnet).start("7")

        statuses = {s.repository.path: s for s in result.repositories}
        assert statuses["good"].ok
        assert not statuses["bad"].ok
        assert "denied" in statuses["bad"].message
        assert not result.success
        committed = [cwd for cwd, _ in _git_calls(fake_runner, "commit")]
        assert committed == [str(features_root / "7" / "good")]

    def test_trust_failure_marks_repository_failed(self, cloned, fake_runner, dotnet):
        fake_runner.respond(
            "git", "config", "--global", "--add", code=255, stderr="could not lock config file"
        )

        result = _service(cloned.workspace, fake_runner, dotnet).start("42")

        assert not result.success
        assert all(not status.ok for status in result.repositories)
        assert all("could not lock" in status.message for status in result.repositories)
        assert _git_calls(fake_runner, "commit") == []

    def test_base_branch_comes_from_workspace(self, cloned, fake_runner, dotnet):
        workspace = replace(cloned.workspace, base_branch="main")
        _service(workspace, fake_runner, dotnet).start("42")
        assert all(args[-1] == "main" for _, args in _git_calls(fake_runner, "checkout"))


class TestFinish:
    def test_reverts_start_commit_and_skips_missing(self, cloned, fake_runner, dotnet):
        s = cloned
        a_dir = str(s.feature.directory / "a")
        fake_runner.respond(
            "git",
            "log",
            handler=lambda spec: _log_result(spec.working_directory == a_dir),
        )

        statuses = _service(s.workspace, fake_runner, dotnet).finish("42")

        by_path = {status.repository.path: status for status in statuses}
        assert by_path["a"].ok
        assert not by_path["b"].ok
        assert by_path["b"].message == "start commit not found"
        assert _git_calls(fake_runner, "revert") == [(a_dir, ("revert", "--no-edit", "c0ffee"))]

    def test_unknown_feature(self, features_root, fake_runner, dotnet):
        workspace = Workspace(root_directory=features_root)
        with pytest.raises(FeatureNotFoundError):
            _service(workspace, fake_runner, dotnet).finish("999")


def _log_result(found):
    return ProcessResult(code=0, stdout="c0ffee" if found else "", stderr="")


class TestPushAndFind:
    def test_push_from_nested_directory(self, cloned, fake_runner, dotnet):
        s = cloned
        nested = s.feature.directory / "a" / "src" / "Api"

        status = _service(s.workspace, fake_runner, dotnet).push(nested)

        assert status.ok
        assert status.repository.path == "a"
        assert _git_calls(fake_runner, "push") == [
            (
                str((s.feature.directory / "a").resolve()),
                ("push", "--set-upstream", "origin", "feature/story-42"),
            )
        ]

    def test_push_outside_repository(self, tmp_path, fake_runner, dotnet):
        workspace = Workspace(root_directory=tmp_path)
        with pytest.raises(FeatureNotFoundError):
            _service(workspace, fake_runner, dotnet).push(tmp_path)

    def test_find_uses_clone_or_remote_url(self, cloned, fake_runner, dotnet):
        s = cloned
        (s.feature.directory / "b" / ".git").rmdir()
        fake_runner.respond("git", "ls-remote", stdout="abc\trefs/heads/feature/story-42\n")

        statuses = _service(s.workspace, fake_runner, dotnet).find("42")

        assert all(status.ok for status in statuses)
        calls = _git_calls(fake_runner, "ls-remote")
        assert calls[0] == (
            str(s.feature.directory / "a"),
            ("ls-remote", "--heads", "origin", "feature/story-42"),
        )
        assert calls[1] == (
            None,
            ("ls-remote", "--heads", "https://example.com/b.git", "feature/story-42"),
        )


def test_builds_requires_configuration(features_root, fake_runner, dotnet):
    workspace = Workspace(root_directory=features_root)
    with pytest.raises(ConfigurationError):
        _service(workspace, fake_runner, dotnet).builds("42")


def test_builds_queries_feature_branch(features_root, fake_runner, dotnet, mocker):
    client = mocker.Mock()
    client.latest_builds.return_value = []
    workspace = Workspace(root_directory=features_root)

    _service(workspace, fake_runner, dotnet, build_status=client).builds("42", count=3)

    client.latest_builds.assert_called_once_with("feature/story-42", 3)


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/work/features/12345/api/src", "12345"),
        ("/work/2024x/777/api", "777"),
    ],
)
def test_feature_number(path, expected):
    assert feature_number(Path(path)) == expected


def test_feature_number_missing():
    with pytest.raises(FeatureNotFoundError):
        feature_number(Path("/work/features/api"))


def test_find_repository_root_from_file(tmp_path):
    repo = tmp_path / "12" / "api"
    (repo / ".git").mkdir(parents=True)
    source = repo / "src" / "Program.cs"
    source.parent.mkdir()
    source.write_text("", encoding="utf-8")

    assert find_repository_root(source) == repo.resolve()
