"""Lifecycle of the llama-swap server container.

There is only ever one server: the container is always named
``opencode-llm`` and any previous instance is force-removed before a
launch.  No state is kept on the host; :meth:`ContainerManager.probe_state`
asks docker.

``start()`` first requests all GPUs.  If docker rejects that because no
GPU driver is available, the launch is retried exactly once on the CPU
image without the GPU request.  A successful start only means docker
accepted the detached launch; the model is still loading.  Readiness is
read from the container logs (see :mod:`localcode.status`).
"""

from __future__ import annotations

import enum
import logging
import os
from dataclasses import dataclass
from typing import Callable, Optional

from ..errors import LaunchFailed, RuntimeUnavailable
from ..routing import RoutingConfig, write_routing_config
from ._subprocess import async_run_command

logger = logging.getLogger(__name__)

CONTAINER_NAME = "opencode-llm"
INTERNAL_PORT = 8080
DEFAULT_PORT = 8080

GPU_IMAGE = "ghcr.io/mostlygeek/llama-swap:cuda"
CPU_IMAGE = "ghcr.io/mostlygeek/llama-swap:cpu"

MODELS_MOUNT = "/models"
CONFIG_MOUNT = "/app/config.yaml"
CONFIG_FILENAME = "llama-swap.yaml"

# stderr fragments docker prints when the NVIDIA runtime is missing.
GPU_UNAVAILABLE_SIGNATURES = ("could not select device driver", "nvidia")

# stderr fragments that mean the docker daemon itself is unreachable.
_DAEMON_DOWN_SIGNATURES = (
    "cannot connect to the docker daemon",
    "error during connect",
    "is the docker daemon running",
)

_RUNTIME_CHECK_TIMEOUT = 15.0

TOOLKIT_INSTALL_URL = (
    "https://docs.nvidia.com/datacenter/cloud-native/container-toolkit/"
    "latest/install-guide.html"
)


def is_gpu_unavailable(stderr: str) -> bool:
    """Return True if a ``docker run`` failure means "no GPU driver".

    Matching ignores case, so ``NVIDIA`` and ``nvidia`` both count.
    """
    lowered = stderr.lower()
    return any(sig in lowered for sig in GPU_UNAVAILABLE_SIGNATURES)


def _is_daemon_down(stderr: str) -> bool:
    lowered = stderr.lower()
    return any(sig in lowered for sig in _DAEMON_DOWN_SIGNATURES)


class ServerState(str, enum.Enum):
    NOT_RUNNING = "not_running"
    STARTING = "starting"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class ServerStatus:
    """Server state as reconstructed from the container runtime."""

    state: ServerState
    gpu: Optional[bool] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class StartResult:
    """Outcome of an accepted launch."""

    container_id: str
    image: str
    gpu: bool
    port: int
    config_path: str


class ContainerManager:
    """Start, inspect, and stop the single server container."""

    def __init__(
        self,
        name: str = CONTAINER_NAME,
        image: str = GPU_IMAGE,
        cpu_image: Optional[str] = CPU_IMAGE,
        docker: str = "docker",
        on_fallback: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.name = name
        self.image = image
        self.cpu_image = cpu_image
        self.docker = docker
        self.on_fallback = on_fallback

    # ------------------------------------------------------------------
    # Runtime
    # ------------------------------------------------------------------

    async def check_runtime(self) -> str:
        """Return the docker server version, or raise :class:`RuntimeUnavailable`."""
        rc, stdout, stderr = await async_run_command(
            [self.docker, "version", "--format", "{{.Server.Version}}"],
            timeout=_RUNTIME_CHECK_TIMEOUT,
        )
        if rc != 0:
            raise RuntimeUnavailable((stderr or stdout).strip() or f"exit code {rc}")
        return stdout.strip()

    async def remove(self) -> bool:
        """Force-remove the named container.

        Returns True if a container was removed and False if none existed.
        """
        rc, stdout, stderr = await async_run_command(
            [self.docker, "rm", "-f", self.name]
        )
        if rc == 0:
            return bool(stdout.strip())
        if _is_daemon_down(stderr):
            raise RuntimeUnavailable(stderr.strip())
        logger.debug("docker rm -f %s: %s", self.name, stderr.strip())
        return False

    # ------------------------------------------------------------------
    # Launch
    # ------------------------------------------------------------------

    def build_run_args(
        self,
        models_dir: str,
        config_path: str,
        port: int = DEFAULT_PORT,
        gpu: bool = True,
    ) -> list[str]:
        """Build the ``docker run`` argv for a detached launch."""
        args = [self.docker, "run", "-d", "--name", self.name]
        if gpu:
            args.extend(["--gpus", "all"])
        args.extend(
            [
                "-p", f"{port}:{INTERNAL_PORT}",
                "-v", f"{os.path.abspath(models_dir)}:{MODELS_MOUNT}",
                "-v", f"{os.path.abspath(config_path)}:{CONFIG_MOUNT}",
                "-e", f"HF_HOME={MODELS_MOUNT}",
                self.image,
            ]
        )
        return args

    def _fallback_args(self, args: list[str]) -> list[str]:
        """Strip the GPU request and swap to the CPU image if one is set."""
        args = list(args)
        if "--gpus" in args:
            pos = args.index("--gpus")
            del args[pos : pos + 2]
        if self.cpu_image and self.cpu_image != self.image:
            args = [self.cpu_image if a == self.image else a for a in args]
        return args

    def _announce_fallback(self, stderr: str) -> None:
        logger.warning(
            "GPU not available (%s); retrying on CPU, this will be slower",
            stderr.strip().splitlines()[0] if stderr.strip() else "no diagnostic",
        )
        if self.on_fallback is not None:
            self.on_fallback(stderr)

    async def start(
        self,
        config: RoutingConfig,
        models_dir: str,
        port: int = DEFAULT_PORT,
    ) -> StartResult:
        """Launch the server container for *config*.

        Raises
        ------
        RuntimeUnavailable
            If docker cannot be reached.
        LaunchFailed
            If docker rejects the launch (after the single CPU retry when the
            failure was a missing GPU driver).
        """
        await self.check_runtime()

        if await self.remove():
            logger.info("Removed previous %s container", self.name)

        os.makedirs(models_dir, exist_ok=True)
        config_path = write_routing_config(
            config, os.path.join(models_dir, CONFIG_FILENAME)
        )

        args = self.build_run_args(models_dir, config_path, port=port, gpu=True)
        logger.info("Launching %s (%s) on port %d", self.name, self.image, port)
        rc, stdout, stderr = await async_run_command(args)
        if rc == 0:
            return StartResult(
                container_id=stdout.strip(),
                image=self.image,
                gpu=True,
                port=port,
                config_path=config_path,
            )

        if not is_gpu_unavailable(stderr):
            raise LaunchFailed(stderr.strip(), gpu_attempted=True)

        self._announce_fallback(stderr)
        # The failed run can leave a created-but-not-started container behind.
        await self.remove()
        args = self._fallback_args(args)
        rc, stdout, stderr = await async_run_command(args)
        if rc != 0:
            raise LaunchFailed(
                stderr.strip(), gpu_attempted=True, fallback_attempted=True
            )

        image = self.cpu_image or self.image
        logger.info("Launched %s on CPU (%s)", self.name, image)
        return StartResult(
            container_id=stdout.strip(),
            image=image,
            gpu=False,
            port=port,
            config_path=config_path,
        )

    # ------------------------------------------------------------------
    # Stop / inspect
    # ------------------------------------------------------------------

    async def stop(self) -> bool:
        """Remove the server container.

        Returns True if a container was removed, False if none was running.
        Only an unreachable runtime raises.
        """
        await self.check_runtime()
        removed = await self.remove()
        if removed:
            logger.info("Stopped %s", self.name)
        else:
            logger.info("No %s container to stop", self.name)
        return removed

    async def probe_state(self) -> ServerStatus:
        """Reconstruct the server state from ``docker inspect``.

        A running container is reported as STARTING; whether the model has
        finished loading is only visible in its logs or on its endpoint.
        """
        await self.check_runtime()
        rc, stdout, stderr = await async_run_command(
            [
                self.docker,
                "inspect",
                "--format",
                "{{.State.Status}} {{.State.ExitCode}} "
                "{{if .HostConfig.DeviceRequests}}gpu{{else}}cpu{{end}}",
                self.name,
            ]
        )
        if rc != 0:
            if _is_daemon_down(stderr):
                raise RuntimeUnavailable(stderr.strip())
            return ServerStatus(ServerState.NOT_RUNNING)

        fields = stdout.split()
        status = fields[0] if fields else ""
        exit_code = fields[1] if len(fields) > 1 else "?"
        gpu = fields[2] == "gpu" if len(fields) > 2 else None

        if status in ("running", "created", "restarting"):
            return ServerStatus(ServerState.STARTING, gpu=gpu)
        return ServerStatus(
            ServerState.FAILED,
            gpu=gpu,
            reason=f"container {status or 'unknown'} (exit code {exit_code})",
        )
