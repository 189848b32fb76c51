from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from featctl.adapters.gitlab import GitLabBackend, GitLabClient
from tests.support.fakes import T1, MemoryLedger
from tests.support.gitlab import FakeGitLab, gitlab_config

if TYPE_CHECKING:
    from collections.abc import Iterator

    from featctl.config import GitLabConfig


@pytest.fixture
def fake_gitlab() -> FakeGitLab:
    return FakeGitLab()


@pytest.fixture
def config() -> GitLabConfig:
    return gitlab_config()


@pytest.fixture
def retry_sleeps() -> list[float]:
    return []


@pytest.fixture
def gitlab_client(
    fake_gitlab: FakeGitLab, config: GitLabConfig, retry_sleeps: list[float]
) -> Iterator[GitLabClient]:
    factory = fake_gitlab.client_factory(sleeps=retry_sleeps)
    client = GitLabClient(config=config, client_factory=factory)
    try:
        yield client
    finally:
        client.close()


@pytest.fixture
def ledger() -> MemoryLedger:
    return MemoryLedger()


@pytest.fixture
def gitlab_backend(
    gitlab_client: GitLabClient, config: GitLabConfig, ledger: MemoryLedger
) -> GitLabBackend:
    suffixes = iter(f"{n:04x}" for n in range(0xA000, 0xFFFF))
    return GitLabBackend(
        config,
        client=gitlab_client,
        ledger=ledger,
        clock=lambda: T1,
        suffix=lambda: next(suffixes),
    )
