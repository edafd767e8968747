import asyncio
import os
import stat

import httpx
import pytest

from app.services import binary as binary_module
from app.services.binary import YtDlpProvisioner, is_executable, release_asset_name
from app.services.ytdlp import CompletedProcess

FAKE_BINARY = b"#!/bin/sh\necho 2025.09.26\n"


def make_executable_file(directory, name="yt-dlp"):
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_bytes(FAKE_BINARY)
    path.chmod(0o755)
    return str(path)


@pytest.fixture(autouse=True)
def hermetic_path(monkeypatch):
    """Ignore any yt-dlp installed on the machine running the tests"""
    monkeypatch.setattr(binary_module.shutil, "which", lambda name: None)


@pytest.fixture
def version_probe(monkeypatch):
    calls = []

    async def fake_run(cmd, timeout, capture_stderr=True):
        calls.append(cmd)
        return CompletedProcess(0, b"2025.09.26\n", b"")

    monkeypatch.setattr(binary_module.SubprocessExecutor, "run", staticmethod(fake_run))
    return calls


def provisioner_for(test_config, handler=None, **overrides):
    settings = test_config.ytdlp.model_copy(update=overrides)
    factory = None
    if handler is not None:
        factory = lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return YtDlpProvisioner(settings, client_factory=factory)


def test_configured_path_wins(tmp_path, test_config):
    configured = make_executable_file(tmp_path / "custom")
    system = make_executable_file(tmp_path / "system")
    provisioner = provisioner_for(test_config, executable_path=configured, system_paths=[system])

    assert provisioner.find_existing() == configured


def test_system_path_used_when_configured_missing(tmp_path, test_config):
    system = make_executable_file(tmp_path / "system")
    provisioner = provisioner_for(
        test_config,
        executable_path=str(tmp_path / "missing" / "yt-dlp"),
        system_paths=[str(tmp_path / "nowhere" / "yt-dlp"), system],
    )

    assert provisioner.find_existing() == system


def test_non_executable_candidates_are_skipped(tmp_path, test_config):
    plain = tmp_path / "plain-yt-dlp"
    plain.write_bytes(FAKE_BINARY)
    plain.chmod(0o644)
    provisioner = provisioner_for(test_config, system_paths=[str(plain)])

    assert provisioner.find_existing() is None


def test_managed_binary_is_the_last_candidate(tmp_path, test_config):
    provisioner = provisioner_for(test_config)
    assert provisioner.candidates()[-1] == os.path.join(str(tmp_path / "bin"), release_asset_name())


@pytest.mark.asyncio
async def test_downloads_pinned_release_when_nothing_installed(tmp_path, test_config, version_probe):
    requested = []

    def handler(request):
        requested.append(str(request.url))
        return httpx.Response(200, content=FAKE_BINARY)

    provisioner = provisioner_for(test_config, handler)
    path = await provisioner.ensure()

    assert path == provisioner.managed_path
    assert is_executable(path)
    assert requested == [
        f"https://github.com/yt-dlp/yt-dlp/releases/download/2025.09.26/{release_asset_name()}"
    ]
    assert provisioner.version == "2025.09.26"
    assert version_probe[0] == [path, "--version"]


@pytest.mark.asyncio
async def test_failed_download_leaves_nothing_behind(tmp_path, test_config, version_probe):
    provisioner = provisioner_for(test_config, lambda request: httpx.Response(404))

    assert await provisioner.ensure() is None
    assert provisioner.path is None
    assert not os.path.exists(provisioner.managed_path)
    assert not os.path.exists(f"{provisioner.managed_path}.part")


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_resolution(test_config, version_probe):
    hits = []

    def handler(request):
        hits.append(request)
        return httpx.Response(200, content=FAKE_BINARY)

    provisioner = provisioner_for(test_config, handler)
    first, second = await asyncio.gather(provisioner.ensure(), provisioner.ensure())

    assert first == second == provisioner.managed_path
    assert len(hits) == 1


@pytest.mark.asyncio
async def test_chmod_binary_fallback(tmp_path, test_config, monkeypatch):
    target = tmp_path / "yt-dlp"
    target.write_bytes(FAKE_BINARY)
    target.chmod(0o644)
    real_chmod = os.chmod
    commands = []

    def denied(path, mode):
        raise PermissionError("operation not permitted")

    async def fake_run(cmd, timeout, capture_stderr=True):
        commands.append(cmd)
        real_chmod(cmd[2], 0o755)
        return CompletedProcess(0, b"", b"")

    monkeypatch.setattr(binary_module.os, "chmod", denied)
    monkeypatch.setattr(binary_module.SubprocessExecutor, "run", staticmethod(fake_run))

    await provisioner_for(test_config).make_executable(str(target))

    assert commands == [["chmod", "755", str(target)]]
    assert os.stat(target).st_mode & stat.S_IXUSR


def test_release_asset_name_per_platform():
    assert release_asset_name("win32") == "yt-dlp.exe"
    assert release_asset_name("linux") == "yt-dlp"
