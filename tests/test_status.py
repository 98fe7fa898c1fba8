"""Tests for localcode.status — log classification and log following."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from localcode.errors import StatusUnavailable
from localcode.runtime import ServerState, ServerStatus
from localcode.status import (
    GENERIC_WIDTH,
    READY_MARKER,
    Phase,
    PhaseEvent,
    classify,
    is_endpoint_ready,
    probe_server,
    watch,
)

LOADING_LOG = [
    "build: 3600 (abc1234) with cc for x86_64-linux-gnu",
    "",
    "llama_download_file: downloading from https://huggingface.co/x/y.gguf",
    "llm_load_print_meta: model type       = 8B",
    "llm_load_print_meta: n_ctx_train      = 8192",
    "llm_load_print_meta: n_layer          = 32",
    "llama_model_load: loaded meta data with 22 key-value pairs",
    "ggml_cuda_init: found 1 CUDA devices",
    "llama_kv_cache_init:      CUDA0 KV buffer size =  1024.00 MiB",
    "main: HTTP server listening, hostname: 0.0.0.0, port: 8080",
    "llama_print_timings:        load time =  1234.56 ms",
]


# ---------------------------------------------------------------------------
# classify
# ---------------------------------------------------------------------------


class TestClassify:
    def test_ready_marker_exact(self):
        event = classify(READY_MARKER)
        assert event is not None
        assert event.phase is Phase.READY
        assert event.is_ready

    def test_ready_marker_in_line(self):
        assert classify(LOADING_LOG[9]).phase is Phase.READY

    def test_meta_stat_model_type(self):
        event = classify("llm_load_print_meta: model type       = 8B")
        assert event.phase is Phase.META_STAT
        assert event.key == "model type"
        assert event.value == "8B"
        assert event.message == "model type: 8B"

    def test_meta_stat_ctx(self):
        event = classify("llm_load_print_meta: n_ctx_train      = 8192")
        assert (event.key, event.value) == ("n_ctx_train", "8192")

    def test_meta_with_extra_equals_is_not_a_stat(self):
        event = classify("llm_load_print_meta: model type = 8B = odd")
        assert event.phase is not Phase.META_STAT

    def test_untracked_meta_key_is_generic(self):
        event = classify("llm_load_print_meta: n_layer          = 32")
        assert event.phase is Phase.GENERIC

    def test_downloading(self):
        assert classify(LOADING_LOG[2]).phase is Phase.DOWNLOADING

    def test_loading_buffers(self):
        assert classify(LOADING_LOG[6]).phase is Phase.LOADING_BUFFERS

    def test_processing_layers(self):
        assert classify(LOADING_LOG[7]).phase is Phase.PROCESSING_LAYERS

    def test_computing_cache(self):
        event = classify(LOADING_LOG[8])
        assert event.phase is Phase.COMPUTING_CACHE
        assert event.message == "Calculating KV cache memory blocks..."

    def test_generic_is_truncated(self):
        line = "x" * 100
        event = classify(line)
        assert event.phase is Phase.GENERIC
        assert event.text == "x" * GENERIC_WIDTH
        assert event.message == f"Status: {'x' * GENERIC_WIDTH}"

    def test_blank_lines(self):
        assert classify("") is None
        assert classify("   \n") is None

    def test_surrounding_whitespace_is_stripped(self):
        assert classify("  short line \n").text == "short line"

    def test_ready_beats_other_rules(self):
        event = classify("ggml_ downloading llama_model_load HTTP server listening")
        assert event.phase is Phase.READY

    def test_downloading_beats_loading(self):
        assert classify("llama_model_load: downloading").phase is Phase.DOWNLOADING

    def test_loading_beats_ggml(self):
        assert classify("llama_model_load: ggml_ctx").phase is Phase.LOADING_BUFFERS

    def test_one_event_per_line(self):
        events = [classify(line) for line in LOADING_LOG]
        assert sum(e is not None for e in events) == len([l for l in LOADING_LOG if l.strip()])


# ---------------------------------------------------------------------------
# watch
# ---------------------------------------------------------------------------


class FakeLogProcess:
    """Stands in for ``docker logs -f``."""

    def __init__(self, lines, returncode=0, eof=True):
        self.stdout = asyncio.StreamReader()
        for line in lines:
            self.stdout.feed_data(f"{line}\n".encode())
        if eof:
            self.stdout.feed_eof()
        self._exit = returncode
        self.returncode = None
        self.terminated = False

    async def wait(self):
        if self.returncode is None:
            self.returncode = self._exit
        return self.returncode

    def terminate(self):
        self.terminated = True
        self.returncode = -15

    def kill(self):
        self.returncode = -9


async def _collect(gen):
    return [event async for event in gen]


def _patch_exec(proc):
    return patch(
        "localcode.status.asyncio.create_subprocess_exec",
        new=AsyncMock(return_value=proc),
    )


class TestWatch:
    @pytest.mark.asyncio
    async def test_attaches_with_tail(self):
        proc = FakeLogProcess(LOADING_LOG)
        with _patch_exec(proc) as mock_exec:
            await _collect(watch("opencode-llm"))
        args = mock_exec.call_args.args
        assert args == ("docker", "logs", "-f", "--tail", "50", "opencode-llm")

    @pytest.mark.asyncio
    async def test_stops_at_ready_and_detaches(self):
        proc = FakeLogProcess(LOADING_LOG, eof=False)
        with _patch_exec(proc) as mock_exec:
            events = await _collect(watch())
        assert events[-1].phase is Phase.READY
        assert len(events) == 9
        assert proc.terminated is True
        # Only the log follower was spawned; the server was left alone.
        assert mock_exec.call_count == 1

    @pytest.mark.asyncio
    async def test_follow_continues_after_ready(self):
        proc = FakeLogProcess(LOADING_LOG)
        with _patch_exec(proc):
            events = await _collect(watch(stop_at_ready=False))
        assert events[-1].text.startswith("llama_print_timings")

    @pytest.mark.asyncio
    async def test_end_of_stream_is_not_an_error(self):
        proc = FakeLogProcess(LOADING_LOG[:4])
        with _patch_exec(proc):
            events = await _collect(watch())
        assert [e.phase for e in events] == [Phase.GENERIC, Phase.DOWNLOADING, Phase.META_STAT]
        assert proc.terminated is False

    @pytest.mark.asyncio
    async def test_phase_sequence(self):
        proc = FakeLogProcess(LOADING_LOG)
        with _patch_exec(proc):
            events = await _collect(watch())
        assert [e.phase for e in events] == [
            Phase.GENERIC,
            Phase.DOWNLOADING,
            Phase.META_STAT,
            Phase.META_STAT,
            Phase.GENERIC,
            Phase.LOADING_BUFFERS,
            Phase.PROCESSING_LAYERS,
            Phase.COMPUTING_CACHE,
            Phase.READY,
        ]

    @pytest.mark.asyncio
    async def test_empty_stream(self):
        proc = FakeLogProcess([])
        with _patch_exec(proc):
            assert await _collect(watch()) == []

    @pytest.mark.asyncio
    async def test_docker_error_is_not_a_log_event(self):
        proc = FakeLogProcess(
            ["Error response from daemon: No such container: opencode-llm"], returncode=1
        )
        seen: list[PhaseEvent] = []
        with _patch_exec(proc):
            with pytest.raises(StatusUnavailable, match="No such container"):
                async for event in watch():
                    seen.append(event)
        assert seen == []

    @pytest.mark.asyncio
    async def test_error_after_logs_keeps_earlier_events(self):
        proc = FakeLogProcess(
            LOADING_LOG[:3] + ["error from daemon: connection reset"], returncode=1
        )
        seen: list[PhaseEvent] = []
        with _patch_exec(proc):
            with pytest.raises(StatusUnavailable, match="connection reset"):
                async for event in watch():
                    seen.append(event)
        assert [e.phase for e in seen] == [Phase.GENERIC, Phase.DOWNLOADING]

    @pytest.mark.asyncio
    async def test_quiet_follower_releases_last_line(self):
        proc = FakeLogProcess(LOADING_LOG[:1], eof=False)
        with _patch_exec(proc):
            gen = watch()
            first = await asyncio.wait_for(gen.__anext__(), timeout=5.0)
            await gen.aclose()
        assert first.text.startswith("build:")
        assert proc.terminated is True

    @pytest.mark.asyncio
    async def test_missing_container_raises(self):
        proc = FakeLogProcess(
            ["Error response from daemon: No such container: opencode-llm"], returncode=1
        )
        with _patch_exec(proc):
            with pytest.raises(StatusUnavailable, match="No such container"):
                await _collect(watch())

    @pytest.mark.asyncio
    async def test_docker_missing_raises(self):
        with patch(
            "localcode.status.asyncio.create_subprocess_exec",
            new=AsyncMock(side_effect=FileNotFoundError("docker")),
        ):
            with pytest.raises(StatusUnavailable):
                await _collect(watch())

    @pytest.mark.asyncio
    async def test_cancel_detaches(self):
        proc = FakeLogProcess(LOADING_LOG[:3], eof=False)
        with _patch_exec(proc):
            gen = watch()
            first = await gen.__anext__()
            assert first.phase is Phase.GENERIC
            await gen.aclose()
        assert proc.terminated is True

    @pytest.mark.asyncio
    async def test_task_cancellation_detaches(self):
        proc = FakeLogProcess(LOADING_LOG[:3], eof=False)
        seen: list[PhaseEvent] = []

        async def _consume():
            async for event in watch():
                seen.append(event)

        with _patch_exec(proc):
            task = asyncio.create_task(_consume())
            while len(seen) < 2:
                await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
        assert proc.terminated is True


# ---------------------------------------------------------------------------
# Endpoint probe
# ---------------------------------------------------------------------------


class TestEndpointProbe:
    @patch("localcode.status.httpx.get")
    def test_ready_on_200(self, mock_get):
        mock_get.return_value = MagicMock(status_code=200)
        assert is_endpoint_ready(port=9090) is True
        mock_get.assert_called_once_with("http://localhost:9090/v1/models", timeout=2.0)

    @patch("localcode.status.httpx.get")
    def test_not_ready_on_503(self, mock_get):
        mock_get.return_value = MagicMock(status_code=503)
        assert is_endpoint_ready() is False

    @patch("localcode.status.httpx.get", side_effect=httpx.ConnectError("refused"))
    def test_not_ready_on_connect_error(self, mock_get):
        assert is_endpoint_ready() is False

    @pytest.mark.asyncio
    async def test_probe_server_upgrades_to_ready(self):
        manager = MagicMock()
        manager.probe_state = AsyncMock(
            return_value=ServerStatus(ServerState.STARTING, gpu=True)
        )
        with patch("localcode.status.is_endpoint_ready", return_value=True):
            status = await probe_server(manager, port=8080)
        assert status.state is ServerState.READY
        assert status.gpu is True

    @pytest.mark.asyncio
    async def test_probe_server_still_starting(self):
        manager = MagicMock()
        manager.probe_state = AsyncMock(return_value=ServerStatus(ServerState.STARTING))
        with patch("localcode.status.is_endpoint_ready", return_value=False):
            status = await probe_server(manager)
        assert status.state is ServerState.STARTING

    @pytest.mark.asyncio
    async def test_probe_server_not_running_skips_http(self):
        manager = MagicMock()
        manager.probe_state = AsyncMock(return_value=ServerStatus(ServerState.NOT_RUNNING))
        with patch("localcode.status.is_endpoint_ready") as mock_ready:
            status = await probe_server(manager)
        assert status.state is ServerState.NOT_RUNNING
        mock_ready.assert_not_called()
