"""Turn the server's log stream into loading-phase events.

Each non-empty log line becomes exactly one :class:`PhaseEvent`.  Lines
are matched against ``_RULES`` top to bottom and the first match wins;
anything unrecognised becomes a ``GENERIC`` event with the first
40 characters of the line.  ``READY`` is emitted when llama-server
reports that its HTTP server is listening.

Watching is read-only: cancelling :func:`watch` stops the ``docker logs``
child process, never the server container.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Callable, Optional

import httpx

from .errors import StatusUnavailable
from .runtime.container import CONTAINER_NAME, ContainerManager, ServerState, ServerStatus

logger = logging.getLogger(__name__)

READY_MARKER = "HTTP server listening"
META_PREFIX = "llm_load_print_meta:"
META_KEYS = ("model type =", "n_ctx_train =")
TIMINGS_MARKER = "llama_print_timings"
GENERIC_WIDTH = 40
LOG_TAIL = 50
FOLLOWER_GRACE = 0.25


class Phase(str, Enum):
    READY = "ready"
    META_STAT = "meta_stat"
    DOWNLOADING = "downloading"
    LOADING_BUFFERS = "loading_buffers"
    PROCESSING_LAYERS = "processing_layers"
    COMPUTING_CACHE = "computing_cache"
    GENERIC = "generic"


_MESSAGES = {
    Phase.READY: "llama.cpp server is actively running",
    Phase.DOWNLOADING: "Downloading model partial over network...",
    Phase.LOADING_BUFFERS: "Loading buffers into memory...",
    Phase.PROCESSING_LAYERS: "Processing architecture layers...",
    Phase.COMPUTING_CACHE: "Calculating KV cache memory blocks...",
}


@dataclass(frozen=True)
class PhaseEvent:
    """One classified log line."""

    phase: Phase
    text: str  # the stripped log line (truncated for GENERIC)
    key: Optional[str] = None  # META_STAT only
    value: Optional[str] = None  # META_STAT only

    @property
    def is_ready(self) -> bool:
        return self.phase is Phase.READY

    @property
    def message(self) -> str:
        if self.phase is Phase.META_STAT:
            return f"{self.key}: {self.value}"
        if self.phase is Phase.GENERIC:
            return f"Status: {self.text}"
        return _MESSAGES[self.phase]


def _is_meta_stat(line: str) -> bool:
    return (
        META_PREFIX in line
        and any(key in line for key in META_KEYS)
        and len(line.split("=")) == 2
    )


def _meta_stat(line: str) -> PhaseEvent:
    raw_key, raw_value = line.split("=")
    return PhaseEvent(
        Phase.META_STAT,
        text=line,
        key=raw_key.replace(META_PREFIX, "").strip(),
        value=raw_value.strip(),
    )


def _simple(phase: Phase) -> Callable[[str], PhaseEvent]:
    return lambda line: PhaseEvent(phase, text=line)


_RULES: list[tuple[Callable[[str], bool], Callable[[str], PhaseEvent]]] = [
    (lambda line: READY_MARKER in line, _simple(Phase.READY)),
    (_is_meta_stat, _meta_stat),
    (lambda line: "downloading" in line, _simple(Phase.DOWNLOADING)),
    (lambda line: "llama_model_load" in line, _simple(Phase.LOADING_BUFFERS)),
    (lambda line: "ggml_" in line, _simple(Phase.PROCESSING_LAYERS)),
    (lambda line: "llama_kv_cache_init:" in line, _simple(Phase.COMPUTING_CACHE)),
]


def classify(line: str) -> Optional[PhaseEvent]:
    """Classify one log line. Returns None for blank lines."""
    line = line.strip()
    if not line:
        return None
    for matches, build in _RULES:
        if matches(line):
            return build(line)
    return PhaseEvent(Phase.GENERIC, text=line[:GENERIC_WIDTH])


async def _spawn_log_follower(
    instance: str, tail: int, docker: str
) -> asyncio.subprocess.Process:
    try:
        return await asyncio.create_subprocess_exec(
            docker,
            "logs",
            "-f",
            "--tail",
            str(tail),
            instance,
            stdout=asyncio.subprocess.PIPE,
            # llama-server logs to stderr; keep one ordered stream.
            stderr=asyncio.subprocess.STDOUT,
        )
    except OSError as exc:
        raise StatusUnavailable(str(exc), instance=instance) from exc


async def _follow_lines(
    proc: asyncio.subprocess.Process, instance: str
) -> AsyncIterator[str]:
    """Yield follower output one line at a time.

    Each line is held back until another line arrives or the follower has
    been quiet for ``FOLLOWER_GRACE`` seconds.  A follower that exits
    non-zero has printed a docker diagnostic, not a server log line, so its
    last line becomes the :class:`StatusUnavailable` message instead.
    """
    assert proc.stdout is not None
    pending: Optional[str] = None
    while True:
        try:
            raw = await asyncio.wait_for(
                proc.stdout.readline(),
                timeout=FOLLOWER_GRACE if pending is not None else None,
            )
        except asyncio.TimeoutError:
            # Still attached, so the held line came from the server.
            yield pending
            pending = None
            continue
        if not raw:
            break
        line = raw.decode(errors="replace")
        if not line.strip():
            continue
        if pending is not None:
            yield pending
        pending = line

    returncode = await proc.wait()
    if returncode != 0:
        raise StatusUnavailable(
            pending.strip() if pending else f"docker logs exited with {returncode}",
            instance=instance,
        )
    if pending is not None:
        yield pending


async def watch(
    instance: str = CONTAINER_NAME,
    *,
    tail: int = LOG_TAIL,
    stop_at_ready: bool = True,
    docker: str = "docker",
) -> AsyncIterator[PhaseEvent]:
    """Follow the logs of *instance* and yield phase events.

    The last *tail* lines are replayed first, then new lines as they
    arrive.  The stream ends when the log stream closes or, with
    *stop_at_ready*, right after the ``READY`` event.

    Raises
    ------
    StatusUnavailable
        If ``docker logs`` cannot be started or exits with an error.
    """
    proc = await _spawn_log_follower(instance, tail, docker)
    lines = _follow_lines(proc, instance)
    try:
        async for line in lines:
            event = classify(line)
            if event is None:
                continue
            yield event
            if stop_at_ready and event.is_ready:
                return
    finally:
        await lines.aclose()
        if proc.returncode is None:
            proc.terminate()
            try:
                await asyncio.wait_for(proc.wait(), timeout=5.0)
            except asyncio.TimeoutError:
                proc.kill()
        logger.debug("Detached from %s logs", instance)
