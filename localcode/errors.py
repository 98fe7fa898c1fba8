"""Error taxonomy for starting, stopping, and watching the model server.

Every error carries the ``stage`` it came from so the CLI can say whether
the container runtime, a download, or the launch itself failed.  The raw
diagnostic from docker or the download client is kept verbatim.
"""

from __future__ import annotations

from typing import Optional


class LocalcodeError(RuntimeError):
    """Base class for orchestration failures."""

    stage = "unknown"
    retryable = False


class ConfigNotFound(LocalcodeError):
    """No saved setup was found on disk."""

    stage = "config"


class RuntimeUnavailable(LocalcodeError):
    """The container engine cannot be reached (not installed or not running)."""

    stage = "runtime"

    def __init__(self, diagnostic: str) -> None:
        self.diagnostic = diagnostic
        super().__init__(
            f"Docker is not running or not installed correctly: {diagnostic}"
        )


class DownloadFailed(LocalcodeError):
    """Fetching the weights for one model failed. The whole start is aborted."""

    stage = "download"
    retryable = True

    def __init__(self, model: str, cause: BaseException) -> None:
        self.model = model
        self.cause = cause
        super().__init__(f"Failed to download '{model}': {cause}")


class LaunchFailed(LocalcodeError):
    """``docker run`` was rejected."""

    stage = "launch"

    def __init__(
        self,
        stderr: str,
        gpu_attempted: bool = True,
        fallback_attempted: bool = False,
    ) -> None:
        self.stderr = stderr
        self.gpu_attempted = gpu_attempted
        self.fallback_attempted = fallback_attempted
        where = " on CPU fallback" if fallback_attempted else ""
        super().__init__(
            f"Docker failed to start container{where}. "
            f"Ensure ports are not in use.\nError: {stderr}"
        )


class StatusUnavailable(LocalcodeError):
    """Attaching to the server's log stream failed."""

    stage = "status"

    def __init__(self, diagnostic: str, instance: Optional[str] = None) -> None:
        self.diagnostic = diagnostic
        self.instance = instance
        super().__init__(f"Could not read logs for '{instance}': {diagnostic}")
