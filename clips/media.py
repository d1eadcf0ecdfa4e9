import logging
import subprocess
from pathlib import Path

from .errors import CommandError

logger = logging.getLogger(__name__)

# How much of a failing tool's stderr to keep on the exception.
_ERROR_TAIL_CHARS = 4000


class CommandRunner:
    """
    Runs an external tool as a blocking call with a timeout.

    Returns the tool's stdout; raises CommandError on a non-zero exit,
    a timeout, or a binary that cannot be started. Orchestration code only
    depends on this interface, never on a specific tool's CLI.
    """

    def run(self, args: list[str], timeout: float) -> str:
        cmd = [str(a) for a in args]
        logger.debug("running %s (timeout=%ss)", cmd[0], timeout)
        try:
            proc = subprocess.run(
                cmd,
                check=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=timeout,
            )
        except subprocess.CalledProcessError as e:
            err = _decode(e.stderr) or _decode(e.stdout) or str(e)
            raise CommandError(cmd, f"{cmd[0]} exited with {e.returncode}: {err[-_ERROR_TAIL_CHARS:]}",
                               returncode=e.returncode, output=err) from e
        except subprocess.TimeoutExpired as e:
            raise CommandError(cmd, f"{cmd[0]} timed out after {timeout}s",
                               output=_decode(e.stderr), timed_out=True) from e
        except OSError as e:
            raise CommandError(cmd, f"could not start {cmd[0]}: {e}") from e
        return _decode(proc.stdout)


def _decode(data) -> str:
    if data is None:
        return ""
    if isinstance(data, str):
        return data
    return data.decode("utf-8", errors="ignore")


class MediaProbe:
    """ffprobe-backed inspection of a local media file."""

    def __init__(self, runner: CommandRunner, *, ffprobe_bin: str = "ffprobe", timeout: float = 30.0):
        self.runner = runner
        self.ffprobe_bin = ffprobe_bin
        self.timeout = timeout

    def has_audio_stream(self, path: Path) -> bool:
        try:
            out = self.runner.run([
                self.ffprobe_bin,
                "-v", "error",
                "-select_streams", "a:0",
                "-show_entries", "stream=codec_type",
                "-of", "default=noprint_wrappers=1:nokey=1",
                str(path),
            ], timeout=self.timeout)
        except CommandError as e:
            logger.info("probe rejected %s: %s", path, e)
            return False
        return out.strip().splitlines()[:1] == ["audio"]

    def duration(self, path: Path) -> float:
        """Duration in seconds. Raises CommandError or ValueError."""
        out = self.runner.run([
            self.ffprobe_bin,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(path),
        ], timeout=self.timeout)
        value = float(out.strip())
        if value != value or value < 0:  # NaN or negative
            raise ValueError(f"invalid duration {out.strip()!r} for {path}")
        return value
