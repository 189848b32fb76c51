from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from featctl.adapters.gitlab.catalog import format_feature_file
from featctl.config import ConfigurationError
from featctl.ui import cli
from tests.support.fakes import make_feature, make_proposal

if TYPE_CHECKING:
    from featctl.adapters.gitlab import GitLabBackend
    from tests.support.gitlab import FakeGitLab


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "configure_logging", lambda **_: None)


@pytest.fixture
def use_backend(monkeypatch: pytest.MonkeyPatch, gitlab_backend: GitLabBackend) -> GitLabBackend:
    monkeypatch.setattr(cli, "build_gitlab_backend", lambda: gitlab_backend)
    return gitlab_backend


def _seed(fake: FakeGitLab) -> None:
    for feature in (make_feature("FT-000001"), make_feature("FT-000002", name="Search")):
        fake.put_file(
            f"features/{feature.id}.yaml", format_feature_file(feature).decode("utf-8")
        )


@pytest.mark.usefixtures("use_backend")
def test_list_prints_one_line_per_feature(
    fake_gitlab: FakeGitLab, capsys: pytest.CaptureFixture[str]
) -> None:
    _seed(fake_gitlab)

    cli.main(["list", "--limit", "1"])

    assert capsys.readouterr().out == "FT-000001\tLogin flow\n"


@pytest.mark.usefixtures("use_backend")
def test_get_prints_feature_details(
    fake_gitlab: FakeGitLab, capsys: pytest.CaptureFixture[str]
) -> None:
    _seed(fake_gitlab)

    cli.main(["get", "FT-000002"])

    out = capsys.readouterr().out
    assert "ID:       FT-000002" in out
    assert "Tags:     auth, web" in out


@pytest.mark.usefixtures("use_backend")
def test_create_prints_merge_request(
    fake_gitlab: FakeGitLab, capsys: pytest.CaptureFixture[str]
) -> None:
    cli.main(
        ["create", "--id", "FT-LOCAL-export", "--name", "Export", "--tag", "io", "--tag", "csv"]
    )

    out = capsys.readouterr().out
    assert out == (
        "Opened MR !1 for FT-000001: "
        "https://gitlab.example.com/group/catalog/-/merge_requests/1\n"
    )
    assert fake_gitlab.merge_requests[1]["source_branch"] == "feature/add-export-a000"


@pytest.mark.usefixtures("use_backend")
def test_update_only_sends_given_fields(fake_gitlab: FakeGitLab) -> None:
    _seed(fake_gitlab)

    cli.main(["update", "FT-000001", "--summary", "Now with SSO"])

    description = fake_gitlab.merge_requests[1]["description"]
    assert "**Name:** Login flow" in description
    assert "**Summary:** Now with SSO" in description


@pytest.mark.usefixtures("use_backend")
def test_whoami(capsys: pytest.CaptureFixture[str]) -> None:
    cli.main(["whoami"])

    out = capsys.readouterr().out
    assert out.startswith("dev (Dev Eloper) role=guest\n")
    assert "gitlab:https://gitlab.example.com/group/catalog" in out


@pytest.mark.usefixtures("use_backend")
def test_backend_errors_exit_with_status_one(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["get", "FT-000404"])

    assert excinfo.value.code == 1
    assert capsys.readouterr().err.startswith("Error: ")


@pytest.mark.usefixtures("use_backend")
def test_invalid_id_exits_with_status_one() -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["delete", "feature-1"])

    assert excinfo.value.code == 1


def test_missing_configuration_exits_with_status_one(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    def missing_config() -> None:
        raise ConfigurationError("Missing required environment variables: FEATCTL_GITLAB_PROJECT")

    monkeypatch.setattr(cli, "build_gitlab_backend", missing_config)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["list"])

    assert excinfo.value.code == 1
    assert "FEATCTL_GITLAB_PROJECT" in capsys.readouterr().err


def test_create_requires_a_name() -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["create", "--summary", "no name"])

    assert excinfo.value.code == 2


def test_pending_lists_tracked_proposals(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(cli, "list_pending", lambda: [make_proposal("FT-LOCAL-login")])

    def unexpected() -> None:
        raise AssertionError("pending must not contact GitLab")

    monkeypatch.setattr(cli, "build_gitlab_backend", unexpected)

    cli.main(["pending"])

    assert capsys.readouterr().out == (
        "!1\tcreate\tFT-LOCAL-login\t"
        "https://gitlab.example.com/group/catalog/-/merge_requests/1\n"
    )
