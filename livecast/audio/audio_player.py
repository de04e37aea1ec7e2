import asyncio
import subprocess
from pathlib import Path

from loguru import logger


class PlaybackError(Exception):
    """An audio file could not be played to completion."""


class AudioPlayer:
    """Plays audio files through an external command-line player.

    Defaults to ffplay so MP3 from the speech service plays directly; the
    command is configurable (e.g. ["paplay"] or ["afplay"]). Audio goes to
    the desktop output, where the broadcast software captures it.
    """

    def __init__(self, command: list[str] | None = None, timeout: float = 120.0):
        self.command = command or ["ffplay", "-nodisp", "-autoexit", "-loglevel", "error"]
        self.timeout = timeout
        self._current_process: subprocess.Popen | None = None

    async def play_file(self, path: Path) -> None:
        """Play an audio file to completion.

        Raises:
            PlaybackError: missing file, missing player, timeout, or non-zero exit.
        """
        if not path.exists():
            raise PlaybackError(f"Audio file not found: {path}")

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._play_file_sync, path)

    def _play_file_sync(self, path: Path) -> None:
        try:
            proc = subprocess.Popen(
                [*self.command, str(path)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise PlaybackError(f"{self.command[0]} not found. Install it or set playback.command.") from e

        self._current_process = proc
        try:
            proc.wait(timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            proc.kill()
            raise PlaybackError(f"Audio playback timed out ({self.timeout:.0f}s)") from e
        finally:
            self._current_process = None

        # -9 means we killed it via stop()
        if proc.returncode not in (0, -9):
            stderr = proc.stderr.read().decode(errors="replace").strip() if proc.stderr else ""
            raise PlaybackError(f"{self.command[0]} exited with {proc.returncode}: {stderr}")

    async def stop(self) -> None:
        """Stop any currently playing audio immediately."""
        proc = self._current_process
        if proc is not None:
            try:
                proc.kill()
                logger.info("[PLAYBACK] Playback stopped (killed {}).", self.command[0])
            except OSError as e:
                logger.debug("Error killing player: {}", e)
            self._current_process = None
