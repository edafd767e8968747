import asyncio
import logging
import os
import shutil
import stat
import sys
from typing import Callable, List, Optional

import aiofiles
import httpx

from app.config.settings import YtDlpConfig
from app.services.ytdlp import SubprocessExecutor, YTDLPCommandBuilder

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT = 120.0


def is_executable(path: Optional[str]) -> bool:
    return bool(path) and os.path.isfile(path) and os.access(path, os.X_OK)


def release_asset_name(platform: str = sys.platform) -> str:
    return "yt-dlp.exe" if platform.startswith("win") else "yt-dlp"


class YtDlpProvisioner:
    """
    Resolves the yt-dlp executable once per process.

    Search order: configured path, well-known system locations (and PATH),
    the managed bin directory. If nothing usable is found the pinned release
    is downloaded into the managed bin directory.
    """

    def __init__(
        self,
        settings: YtDlpConfig,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
    ):
        self.settings = settings
        self.managed_dir = os.path.abspath(settings.managed_bin_dir)
        self.managed_path = os.path.join(self.managed_dir, release_asset_name())
        self._client_factory = client_factory or (
            lambda: httpx.AsyncClient(follow_redirects=True, timeout=DOWNLOAD_TIMEOUT)
        )
        self._task: Optional[asyncio.Task] = None
        self.path: Optional[str] = None
        self.version: str = "unknown"

    def candidates(self) -> List[str]:
        paths = []
        configured = self.settings.executable_path
        if configured:
            if os.sep in configured:
                paths.append(configured)
            else:
                found = shutil.which(configured)
                if found:
                    paths.append(found)
        paths.extend(self.settings.system_paths)
        on_path = shutil.which("yt-dlp")
        if on_path:
            paths.append(on_path)
        paths.append(self.managed_path)
        return paths

    def find_existing(self) -> Optional[str]:
        for candidate in self.candidates():
            if is_executable(candidate):
                return os.path.abspath(candidate)
        return None

    def start(self) -> asyncio.Task:
        """Kick off resolution in the background; later calls share the same task."""
        if self._task is None:
            self._task = asyncio.create_task(self._resolve())
        return self._task

    async def ensure(self) -> Optional[str]:
        """Await resolution. Returns None when provisioning failed."""
        return await asyncio.shield(self.start())

    async def _resolve(self) -> Optional[str]:
        path = self.find_existing()
        if path is None:
            try:
                path = await self.download()
            except Exception as e:
                logger.error(f"yt-dlp provisioning failed: {e}")
                return None

        self.path = path
        self.version = await self._probe_version(path)
        logger.info(f"Using yt-dlp at {path} (version {self.version})")
        return path

    async def _probe_version(self, path: str) -> str:
        cmd = YTDLPCommandBuilder(path, self.settings).build_version_command()
        try:
            result = await SubprocessExecutor.run(cmd, timeout=15.0)
            if result.returncode == 0:
                return result.stdout.decode(errors="ignore").strip() or "unknown"
        except Exception as e:
            logger.warning(f"Could not read yt-dlp version: {e}")
        return "unknown"

    def release_url(self) -> str:
        return self.settings.release_url.format(
            release=self.settings.release,
            asset=release_asset_name(),
        )

    async def download(self) -> str:
        """Fetch the pinned release asset into the managed bin directory."""
        url = self.release_url()
        os.makedirs(self.managed_dir, exist_ok=True)
        part_path = f"{self.managed_path}.part"
        logger.info(f"Downloading yt-dlp {self.settings.release} from {url}")

        async with self._client_factory() as client:
            async with client.stream("GET", url) as response:
                if response.status_code != 200:
                    raise RuntimeError(f"Release download returned HTTP {response.status_code}")
                try:
                    async with aiofiles.open(part_path, "wb") as f:
                        async for chunk in response.aiter_bytes():
                            await f.write(chunk)
                except BaseException:
                    if os.path.exists(part_path):
                        os.remove(part_path)
                    raise

        os.replace(part_path, self.managed_path)
        await self.make_executable(self.managed_path)
        if not is_executable(self.managed_path):
            raise RuntimeError(f"{self.managed_path} is not executable after provisioning")
        return self.managed_path

    async def make_executable(self, path: str) -> None:
        """os.chmod first; restrictive sandboxes sometimes only honour the chmod binary."""
        try:
            mode = os.stat(path).st_mode
            os.chmod(path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
            if is_executable(path):
                return
        except OSError as e:
            logger.warning(f"os.chmod failed for {path}: {e}")

        try:
            result = await SubprocessExecutor.run(["chmod", "755", path], timeout=10.0)
            if result.returncode != 0:
                logger.warning(f"chmod exited {result.returncode}: {result.stderr.decode(errors='ignore')[:200]}")
        except OSError as e:
            logger.warning(f"chmod fallback failed for {path}: {e}")
