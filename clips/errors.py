from enum import Enum


class ProcessingErrorType(str, Enum):
    DOWNLOAD_FAILED = "DOWNLOAD_FAILED"
    INVALID_AUDIO = "INVALID_AUDIO"
    GENERATION_FAILED = "GENERATION_FAILED"
    UPLOAD_FAILED = "UPLOAD_FAILED"
    DATABASE_ERROR = "DATABASE_ERROR"


class ProcessingError(Exception):
    """
    A fatal failure of one pipeline step. Any ProcessingError aborts the job
    attempt; the broker decides whether to retry.
    """

    def __init__(self, error_type: ProcessingErrorType, message: str, *,
                 item_id: str | None = None, step: str | None = None,
                 asset_type: str | None = None):
        super().__init__(message)
        self.error_type = ProcessingErrorType(error_type)
        self.message = message
        self.item_id = item_id
        self.step = step
        self.asset_type = asset_type  # only meaningful for GENERATION_FAILED

    def __str__(self):
        where = f" [{self.step}]" if self.step else ""
        return f"{self.error_type.value}{where}: {self.message}"


class CommandError(RuntimeError):
    """An external tool exited non-zero, timed out, or could not be started."""

    def __init__(self, args: list[str], message: str, *, returncode: int | None = None,
                 output: str = "", timed_out: bool = False):
        super().__init__(message)
        self.cmd = list(args)
        self.returncode = returncode
        self.output = output
        self.timed_out = timed_out
