from typing import List, Optional, NamedTuple
import asyncio
import os
from app.config.settings import YtDlpConfig

class CompletedProcess(NamedTuple):
    """Subprocess result"""
    returncode: int
    stdout: bytes
    stderr: bytes

class SubprocessExecutor:
    """Execute subprocess with consistent error handling"""

    @staticmethod
    async def run(
        cmd: List[str],
        timeout: float,
        capture_stderr: bool = True
    ) -> CompletedProcess:
        """
        Run subprocess with timeout and proper cleanup.
        Prevents process leaks and ensures consistent error handling.
        """
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE if capture_stderr else asyncio.subprocess.DEVNULL,
            stdin=asyncio.subprocess.DEVNULL
        )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=timeout
            )

            return CompletedProcess(
                returncode=process.returncode,
                stdout=stdout,
                stderr=stderr if capture_stderr else b""
            )

        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise
        except BaseException:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

class YTDLPCommandBuilder:
    """Build yt-dlp commands for one resolved executable"""

    def __init__(self, executable: str, settings: YtDlpConfig):
        self.executable = executable
        self.settings = settings

    def _base(self) -> List[str]:
        cmd = [
            self.executable,
            '--no-playlist',
            '--no-warnings',
            '--socket-timeout', str(self.settings.socket_timeout),
            '--retries', str(self.settings.retries),
        ]
        cookies = self.settings.cookies_file
        if cookies and os.path.isfile(cookies):
            cmd.extend(['--cookies', cookies])
        return cmd

    def build_version_command(self) -> List[str]:
        return [self.executable, '--version']

    def build_info_command(self, url: str) -> List[str]:
        """Build command for fetching video info as a single JSON document"""
        cmd = self._base()
        cmd.extend(['--dump-json', '--skip-download'])
        cmd.append(url)
        return cmd

    def build_stream_command(self, url: str, format_str: str) -> List[str]:
        """Build command that writes the media bytes to stdout"""
        cmd = self._base()
        cmd.extend([
            '-f', format_str,
            '-o', '-',
            # NOTE: Do NOT use --print here as it mixes with binary output in stdout
            '--no-progress',
            '--quiet',
            '--no-part',
        ])
        cmd.append(url)
        return cmd

    def build_file_command(
        self,
        url: str,
        format_str: str,
        output_template: str,
        audio_only: bool,
        merge_format: Optional[str] = None
    ) -> List[str]:
        """
        Build command that downloads to disk and prints the final path.
        after_move:filepath is printed once post-processing has renamed the
        file, so the caller never has to guess the extension.
        """
        cmd = self._base()
        cmd.extend([
            '-f', format_str,
            '-o', output_template,
            '--no-progress',
            '--print', 'after_move:filepath',
        ])
        if audio_only:
            cmd.extend(['-x', '--audio-format', 'mp3'])
        elif merge_format:
            cmd.extend(['--merge-output-format', merge_format])
        cmd.append(url)
        return cmd
