"""Conversion engine client.

Owns one engine process and its pipes, frames requests onto stdin, splits
responses off stdout, and correlates them to requests by sequence number.

Architecture:
    +--------------------+   length-prefixed JSON   +------------------+
    | EngineClient       |------------------------->| engine process   |
    |  send() -> seq     |         (stdin)          |                  |
    |  _pending[seq]     |<-------------------------|                  |
    |  feed_data()       |         (stdout)         |  stderr -> DEBUG |
    +--------------------+                          +------------------+

Everything runs on the event loop that called ``start``: reads arrive via
asyncio tasks and callbacks fire on the same thread as the controller.

Usage:
    client = EngineClient(capabilities={"zenzai": {"enabled": False}})
    if await client.start():
        response = await client.convert("きょうは", live=True).wait()
    await client.stop()
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Sequence

from ..core.cancel_token import CancelToken
from ..core.state_machine import ConnectionEvent, ConnectionState, ConnectionStateMachine
from ..errors import ConfigurationError, ProcessError, ProtocolError, RequestError
from .framing import FrameDecoder, FrameTooLargeError, decode_message, encode_message
from .locator import resolve_engine_path
from .messages import (
    AdjustSegmentRequest,
    CommitRequest,
    ConvertRequest,
    ErrorResponse,
    InitRequest,
    InitResult,
    Request,
    Response,
    ShutdownRequest,
    parse_response,
    to_payload,
)

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024

ResponseCallback = Callable[[Response], None]


class PendingRequest:
    """Response handle for one request.

    Callbacks run exactly once, when the response (or a synthetic error)
    arrives. ``cancel()`` marks the result unwanted: the response is still
    consumed, but callbacks are skipped.
    """

    def __init__(self, seq: int, request_type: str):
        self.seq = seq
        self.request_type = request_type
        self.token = CancelToken()
        self._response: Response | None = None
        self._callbacks: list[ResponseCallback] = []
        self._waiters: list[asyncio.Future] = []
        self.token.on_cancel(self._callbacks.clear)

    @classmethod
    def failed(cls, request_type: str, error: str, seq: int = 0) -> "PendingRequest":
        """A handle that is already resolved with an ``error`` response."""
        pending = cls(seq, request_type)
        pending.resolve(ErrorResponse(seq=seq, error=error))
        return pending

    @property
    def done(self) -> bool:
        return self._response is not None

    @property
    def response(self) -> Response | None:
        return self._response

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def cancel(self) -> None:
        self.token.cancel()

    def add_callback(self, callback: ResponseCallback) -> None:
        if self._response is None:
            self._callbacks.append(callback)
        elif not self.token.cancelled:
            _invoke(callback, self._response)

    def resolve(self, response: Response) -> bool:
        """Deliver ``response``; returns False if already resolved."""
        if self._response is not None:
            return False
        self._response = response

        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(response)

        callbacks, self._callbacks = self._callbacks, []
        if not self.token.cancelled:
            for callback in callbacks:
                _invoke(callback, response)
        return True

    async def wait(self) -> Response:
        if self._response is not None:
            return self._response
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        return await waiter


def _invoke(callback: Callable, *args) -> None:
    try:
        callback(*args)
    except Exception:
        logger.exception("Engine client callback failed")


class EngineClient:
    """One engine process plus request/response correlation.

    Connection lifecycle follows ``ConnectionStateMachine``:
    NOT_STARTED -> SPAWNING -> INITIALIZING -> READY -> STOPPING -> STOPPED.
    "Ready" is only reported once the engine has answered ``init``;
    "stopped" only once the process has exited and its pipes are drained.
    """

    def __init__(
        self,
        executable: str | Path | None = None,
        args: Sequence[str] = (),
        capabilities: dict | None = None,
        ui=None,
        start_timeout: float = 10.0,
        stop_timeout: float = 3.0,
        data_dir: Path | None = None,
        project_root: Path | None = None,
    ):
        self._executable = executable
        self._args = list(args)
        self._capabilities = dict(capabilities or {})
        self._ui = ui
        self._start_timeout = start_timeout
        self._stop_timeout = stop_timeout
        self._data_dir = data_dir
        self._project_root = project_root

        self._machine = ConnectionStateMachine()
        self._process: asyncio.subprocess.Process | None = None
        self._decoder = FrameDecoder()
        self._pending: dict[int, PendingRequest] = {}
        # Set when the stdout stream can no longer be split into frames
        self._stream_broken = False
        # Never reset, so a restarted engine never sees a reused seq
        self._seq = 0

        self.session_id: str | None = None
        self.version: str | None = None
        self.engine_capabilities: dict = {}

        self._start_future: asyncio.Future | None = None
        self._start_callbacks: list[Callable[[bool], None]] = []
        self._stop_future: asyncio.Future | None = None
        self._stop_callbacks: list[Callable[[], None]] = []
        self._start_timer: asyncio.TimerHandle | None = None
        self._kill_timer: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()

    # --- State ---

    @property
    def state(self) -> ConnectionState:
        return self._machine.state

    @property
    def is_running(self) -> bool:
        return self._process is not None and self.state in (
            ConnectionState.INITIALIZING,
            ConnectionState.READY,
        )

    @property
    def is_ready(self) -> bool:
        return self.state is ConnectionState.READY

    @property
    def next_seq(self) -> int:
        return self._seq + 1

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # --- Lifecycle ---

    def start(self, callback: Callable[[bool], None] | None = None) -> asyncio.Future:
        """Spawn and initialize the engine.

        Returns a future resolving to True once ``init_result`` arrives, or
        False on any failure. ``callback(success)`` is called at the same
        moment. An unresolvable executable fails before this returns.
        """
        loop = asyncio.get_running_loop()
        state = self.state

        if state is ConnectionState.READY:
            return _resolved(loop, True, callback)
        if state in (ConnectionState.SPAWNING, ConnectionState.INITIALIZING):
            if callback:
                self._start_callbacks.append(callback)
            return self._start_future
        if state is ConnectionState.STOPPING:
            logger.warning("Engine is stopping; start request refused")
            return _resolved(loop, False, callback)

        try:
            path = resolve_engine_path(self._executable, self._data_dir, self._project_root)
        except ConfigurationError as e:
            logger.error(str(e))
            self._notify("⚠ Conversion engine not found", str(e))
            return _resolved(loop, False, callback)

        self._machine.transition(ConnectionEvent.START)
        self._start_future = loop.create_future()
        self._start_callbacks = [callback] if callback else []
        self._spawn_task(self._spawn(path))
        return self._start_future

    def stop(self, callback: Callable[[], None] | None = None) -> asyncio.Future:
        """Ask the engine to shut down.

        The returned future (and ``callback``) complete only after the
        process exit has been observed and its pipes released.
        """
        loop = asyncio.get_running_loop()
        if not self._machine.is_live:
            return _resolved(loop, None, callback)

        if callback:
            self._stop_callbacks.append(callback)
        if self._stop_future is None:
            self._stop_future = loop.create_future()

        if self.state is not ConnectionState.STOPPING:
            self._machine.transition(ConnectionEvent.STOP)
            self._resolve_start(False)
            # While spawning there is no process yet; _spawn handles it
            if self._process is not None:
                self._request_shutdown()
        return self._stop_future

    async def _spawn(self, path: Path) -> None:
        try:
            process = await asyncio.create_subprocess_exec(
                str(path),
                *self._args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            error = ProcessError(f"Failed to spawn {path}: {e}")
            logger.error(str(error))
            self._notify("❌ Conversion engine failed", str(error))
            self._machine.transition(ConnectionEvent.FAIL)
            self._resolve_start(False)
            self._resolve_stop()
            return

        self._process = process
        self._decoder.reset()
        self._stream_broken = False
        self.session_id = None
        self._watch(process)

        if self.state is ConnectionState.STOPPING:
            # stop() arrived while we were spawning
            self._request_shutdown()
            return

        self._machine.transition(ConnectionEvent.SPAWNED)
        logger.info(f"Engine started: {path} (pid {process.pid})")

        loop = asyncio.get_running_loop()
        self._start_timer = loop.call_later(self._start_timeout, self._on_start_timeout)
        self.send(InitRequest(self._capabilities), callback=self._on_init_response)

    def _on_init_response(self, response: Response) -> None:
        if self.state is not ConnectionState.INITIALIZING:
            return

        if isinstance(response, InitResult):
            self._machine.transition(ConnectionEvent.INIT_DONE)
            self.version = response.version
            self.engine_capabilities = response.capabilities
            logger.info(f"Engine initialized (v{response.version}, session {response.session_id})")
            self._resolve_start(True)
            return

        reason = getattr(response, "error", type(response).__name__)
        logger.error(f"Engine init failed: {reason}")
        self._notify("❌ Conversion engine failed", f"Init failed: {reason}")
        self._machine.transition(ConnectionEvent.FAIL)
        self._resolve_start(False)
        self._request_shutdown()

    def _on_start_timeout(self) -> None:
        self._start_timer = None
        if self.state is not ConnectionState.INITIALIZING:
            return
        logger.error(f"Engine did not answer init within {self._start_timeout}s")
        self._notify("❌ Conversion engine failed", "No answer to init")
        self._machine.transition(ConnectionEvent.FAIL)
        self._resolve_start(False)
        self._request_shutdown()

    def _request_shutdown(self) -> None:
        process = self._process
        if process is None:
            return
        self._write(ShutdownRequest())
        if process.stdin is not None and not process.stdin.is_closing():
            process.stdin.close()
        if self._kill_timer is None:
            loop = asyncio.get_running_loop()
            self._kill_timer = loop.call_later(self._stop_timeout, self._kill)

    def _kill(self) -> None:
        self._kill_timer = None
        process = self._process
        if process is None or process.returncode is not None:
            return
        logger.warning(f"Engine did not exit within {self._stop_timeout}s; killing it")
        try:
            process.kill()
        except ProcessLookupError:
            pass

    # --- Process I/O ---

    def _spawn_task(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _watch(self, process: asyncio.subprocess.Process) -> None:
        readers = [
            self._spawn_task(self._read_stdout(process)),
            self._spawn_task(self._read_stderr(process)),
        ]
        self._spawn_task(self._wait_exit(process, readers))

    async def _read_stdout(self, process: asyncio.subprocess.Process) -> None:
        while True:
            try:
                chunk = await process.stdout.read(READ_CHUNK_SIZE)
            except OSError as e:
                logger.error(f"Engine read error: {e}")
                return
            if not chunk:
                return
            self.feed_data(chunk)

    async def _read_stderr(self, process: asyncio.subprocess.Process) -> None:
        while True:
            try:
                line = await process.stderr.readline()
            except (OSError, ValueError) as e:
                logger.debug(f"Engine stderr closed: {e}")
                return
            if not line:
                return
            logger.debug("[engine] %s", line.decode("utf-8", errors="replace").rstrip())

    async def _wait_exit(self, process: asyncio.subprocess.Process, readers: list[asyncio.Task]) -> None:
        code = await process.wait()
        await asyncio.gather(*readers, return_exceptions=True)
        if process.stdin is not None and not process.stdin.is_closing():
            process.stdin.close()
        self._on_exit(code)

    def _on_exit(self, code: int) -> None:
        expected = self.state is ConnectionState.STOPPING
        self._machine.transition(ConnectionEvent.EXITED)
        self._process = None
        self.session_id = None
        self._decoder.reset()
        for timer in (self._start_timer, self._kill_timer):
            if timer is not None:
                timer.cancel()
        self._start_timer = self._kill_timer = None

        if code != 0:
            logger.warning(f"Engine exited with code {code}")
            self._notify("⚠ Conversion engine exited", f"Exit code {code}")
        elif not expected:
            logger.warning("Engine exited unexpectedly")
        else:
            logger.info("Engine stopped")

        pending, self._pending = self._pending, {}
        for request in pending.values():
            request.resolve(ErrorResponse(seq=request.seq, error="Engine exited"))

        self._resolve_start(False)
        self._resolve_stop()

    def _resolve_start(self, success: bool) -> None:
        if self._start_timer is not None and not success:
            self._start_timer.cancel()
            self._start_timer = None
        if success and self._start_timer is not None:
            self._start_timer.cancel()
            self._start_timer = None

        future, self._start_future = self._start_future, None
        callbacks, self._start_callbacks = self._start_callbacks, []
        if future is not None and not future.done():
            future.set_result(success)
        for callback in callbacks:
            _invoke(callback, success)

    def _resolve_stop(self) -> None:
        future, self._stop_future = self._stop_future, None
        callbacks, self._stop_callbacks = self._stop_callbacks, []
        if future is not None and not future.done():
            future.set_result(None)
        for callback in callbacks:
            _invoke(callback)

    # --- Requests ---

    def send(self, request: Request, callback: ResponseCallback | None = None) -> PendingRequest:
        """Frame and write ``request``.

        Never raises: with no running engine the returned handle is already
        resolved with an ``error`` response (and ``callback`` has run).
        """
        if not self.is_running:
            error = RequestError("Engine not running")
            logger.error(f"Cannot send {request.type}: {error}")
            return _failed(request.type, str(error), callback)
        return self._write(request, callback)

    def _write(self, request: Request, callback: ResponseCallback | None = None) -> PendingRequest:
        self._seq += 1
        seq = self._seq
        pending = PendingRequest(seq, request.type)
        if callback:
            pending.add_callback(callback)

        try:
            frame = encode_message(to_payload(request, seq, self.session_id))
        except ProtocolError as e:
            logger.error(f"Cannot encode {request.type} request: {e}")
            pending.resolve(ErrorResponse(seq=seq, error=str(e)))
            return pending

        self._pending[seq] = pending
        try:
            self._process.stdin.write(frame)
        except (OSError, RuntimeError) as e:
            self._pending.pop(seq, None)
            logger.error(f"Failed to write {request.type} request: {e}")
            pending.resolve(ErrorResponse(seq=seq, error=f"Write failed: {e}"))
        return pending

    def _session_request(self, request: Request, callback: ResponseCallback | None) -> PendingRequest:
        if self.is_running and self.session_id is None:
            logger.warning(f"Cannot send {request.type}: engine not initialized yet")
            return _failed(request.type, "Engine not initialized", callback)
        return self.send(request, callback)

    def convert(
        self,
        reading: str,
        cursor: int | None = None,
        live: bool = False,
        callback: ResponseCallback | None = None,
    ) -> PendingRequest:
        return self._session_request(ConvertRequest(reading, cursor, live), callback)

    def commit(self, reading: str, candidate: str, callback: ResponseCallback | None = None) -> PendingRequest:
        return self._session_request(CommitRequest(reading, candidate), callback)

    def adjust_segment(
        self,
        reading: str,
        segments: Sequence,
        segment_index: int,
        direction: str,
        callback: ResponseCallback | None = None,
    ) -> PendingRequest:
        try:
            request = AdjustSegmentRequest(reading, tuple(segments), segment_index, direction)
        except ProtocolError as e:
            logger.error(str(e))
            return _failed(AdjustSegmentRequest.type, str(e), callback)
        return self._session_request(request, callback)

    async def request(self, request: Request) -> Response:
        """Send ``request`` and wait for its response."""
        return await self.send(request).wait()

    # --- Receive path ---

    def feed_data(self, chunk: bytes) -> None:
        """Consume bytes read from the engine's stdout.

        Drains every complete frame in the accumulator before returning.
        A malformed frame is logged and skipped; later frames are unaffected.
        An oversized length header breaks the stream for good: every pending
        request fails and the engine is stopped.
        """
        if self._stream_broken:
            return
        try:
            payloads = self._decoder.feed(chunk)
        except FrameTooLargeError as e:
            for payload in e.frames:
                self._handle_payload(payload)
            self._on_stream_fault(e)
            return
        for payload in payloads:
            self._handle_payload(payload)

    def _on_stream_fault(self, error: FrameTooLargeError) -> None:
        self._stream_broken = True
        logger.error(f"Engine output is corrupt, stopping engine: {error}")
        self._notify("❌ Conversion engine failed", str(error))

        pending, self._pending = self._pending, {}
        for request in pending.values():
            request.resolve(ErrorResponse(seq=request.seq, error=f"Protocol error: {error}"))
        self.stop()

    def _handle_payload(self, payload: bytes) -> None:
        try:
            message = decode_message(payload)
        except ProtocolError as e:
            logger.warning(f"Dropping malformed frame ({len(payload)} bytes): {e}")
            return

        try:
            response = parse_response(message)
        except ProtocolError as e:
            logger.warning(f"Dropping invalid message: {e}")
            seq = message.get("seq")
            if isinstance(seq, int) and not isinstance(seq, bool) and seq in self._pending:
                self._pending.pop(seq).resolve(ErrorResponse(seq=seq, error=f"Protocol error: {e}"))
            return

        if isinstance(response, InitResult):
            self.session_id = response.session_id

        pending = self._pending.pop(response.seq, None)
        if pending is None:
            logger.debug(f"No pending request for seq {response.seq} ({type(response).__name__})")
            return
        pending.resolve(response)

    def _notify(self, title: str, message: str) -> None:
        if self._ui is not None:
            self._ui.notify(title, message)


def _resolved(loop: asyncio.AbstractEventLoop, result, callback: Callable | None) -> asyncio.Future:
    future = loop.create_future()
    future.set_result(result)
    if callback:
        if result is None:
            _invoke(callback)
        else:
            _invoke(callback, result)
    return future


def _failed(request_type: str, error: str, callback: ResponseCallback | None) -> PendingRequest:
    pending = PendingRequest.failed(request_type, error)
    if callback:
        pending.add_callback(callback)
    return pending
