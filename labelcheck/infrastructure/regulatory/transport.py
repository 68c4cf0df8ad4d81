"""
Transports for the regulatory tool server

A transport moves one JSON-RPC request line to a tool server process and
returns the raw response line. Decoding is the client's job.
"""
import asyncio
import json
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Set

from labelcheck.core.exceptions import ToolInvocationError, ToolTimeoutError
from labelcheck.core.logging import get_logger

logger = get_logger(__name__)

# tool responses are pretty-printed JSON inside a JSON string
STREAM_LIMIT = 2 ** 20


def encode_message(message: dict) -> bytes:
    return (json.dumps(message) + "\n").encode("utf-8")


def last_line(output: str) -> str:
    """Last non-empty line of a process output"""
    lines = [line for line in output.splitlines() if line.strip()]
    return lines[-1] if lines else ""


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()


class ToolTransport(ABC):
    """Base class for tool server transports"""

    @abstractmethod
    async def request(self, message: dict, timeout_s: float) -> str:
        """
        Send one request and return the raw response line

        Raises:
            ToolTimeoutError: no answer before timeout_s, the process was killed
            ToolInvocationError: the process could not be started, exited or closed its output
        """
        pass

    async def close(self) -> None:
        """Release processes held by the transport"""
        pass


class SubprocessToolTransport(ToolTransport):
    """
    One short-lived tool server process per request

    The request is written to stdin, stdin is closed and the last non-empty
    stdout line is the response. At most ``max_concurrency`` processes run
    at once.
    """

    def __init__(
        self,
        command: Sequence[str],
        max_concurrency: int = 4,
        env: Optional[Dict[str, str]] = None,
    ):
        if not command:
            raise ValueError("Tool server command must not be empty")
        self.command = list(command)
        self.env = env
        self.max_concurrency = max_concurrency
        self._semaphore: Optional[asyncio.Semaphore] = None

    def _limit(self) -> asyncio.Semaphore:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrency)
        return self._semaphore

    async def request(self, message: dict, timeout_s: float) -> str:
        async with self._limit():
            return await self._exchange(message, timeout_s)

    async def _exchange(self, message: dict, timeout_s: float) -> str:
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.env,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            raise ToolInvocationError(
                f"Could not start tool server: {e}", {"command": self.command}
            )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(encode_message(message)), timeout=timeout_s
            )
        except asyncio.TimeoutError:
            await _kill(process)
            logger.warning("Tool server timed out, killed", pid=process.pid, timeout_s=timeout_s)
            raise ToolTimeoutError(
                f"Tool server did not answer within {timeout_s}s", {"pid": process.pid}
            )
        except asyncio.CancelledError:
            await _kill(process)
            raise

        if process.returncode != 0:
            error_text = stderr.decode("utf-8", errors="replace").strip()
            raise ToolInvocationError(
                f"Tool server exited with code {process.returncode}: {error_text[-500:]}",
                {"returncode": process.returncode},
            )

        line = last_line(stdout.decode("utf-8", errors="replace"))
        if not line:
            raise ToolInvocationError("Tool server produced no output")
        return line


class _ToolWorker:
    """Long-lived tool server process answering one request at a time"""

    def __init__(self, process: asyncio.subprocess.Process):
        self.process = process
        self._stderr_task = asyncio.ensure_future(self._drain_stderr())

    @classmethod
    async def spawn(cls, command: List[str], env: Optional[Dict[str, str]]) -> "_ToolWorker":
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            raise ToolInvocationError(f"Could not start tool server: {e}", {"command": command})
        logger.debug("Tool worker started", pid=process.pid)
        return cls(process)

    @property
    def alive(self) -> bool:
        return self.process.returncode is None

    async def _drain_stderr(self) -> None:
        while True:
            line = await self.process.stderr.readline()
            if not line:
                return
            logger.debug("Tool worker stderr", pid=self.process.pid, line=line.decode(errors="replace").rstrip())

    async def request(self, message: dict, timeout_s: float) -> str:
        try:
            return await asyncio.wait_for(self._exchange(message), timeout=timeout_s)
        except asyncio.TimeoutError:
            await self.kill()
            logger.warning("Tool worker timed out, killed", pid=self.process.pid, timeout_s=timeout_s)
            raise ToolTimeoutError(
                f"Tool server did not answer within {timeout_s}s", {"pid": self.process.pid}
            )
        except asyncio.CancelledError:
            # the worker may still answer the abandoned request
            await self.kill()
            raise

    async def _exchange(self, message: dict) -> str:
        request_id = message.get("id")
        try:
            self.process.stdin.write(encode_message(message))
            await self.process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            await self.kill()
            raise ToolInvocationError(f"Tool server stdin closed: {e}")

        while True:
            raw = await self.process.stdout.readline()
            if not raw:
                await self.kill()
                raise ToolInvocationError(
                    f"Tool server closed its output (exit code {self.process.returncode})"
                )
            line = raw.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            try:
                response_id = json.loads(line).get("id")
            except (ValueError, AttributeError):
                # let the client report it
                return line
            if response_id == request_id:
                return line
            logger.debug("Discarding response for another request", expected=request_id, got=response_id)

    async def kill(self) -> None:
        await _kill(self.process)
        if not self._stderr_task.done():
            self._stderr_task.cancel()


class WorkerPoolToolTransport(ToolTransport):
    """
    Fixed number of long-lived tool server processes

    Requests are newline-delimited on each worker's stdin and responses are
    matched by id. A worker that times out or dies is killed and replaced by
    a fresh process on its next checkout.
    """

    def __init__(
        self,
        command: Sequence[str],
        size: int = 2,
        env: Optional[Dict[str, str]] = None,
    ):
        if not command:
            raise ValueError("Tool server command must not be empty")
        if size < 1:
            raise ValueError("Pool size must be at least 1")
        self.command = list(command)
        self.size = size
        self.env = env
        self._idle: Optional[asyncio.Queue] = None
        self._workers: Set[_ToolWorker] = set()

    def _slots(self) -> asyncio.Queue:
        if self._idle is None:
            self._idle = asyncio.Queue()
            for _ in range(self.size):
                self._idle.put_nowait(None)
        return self._idle

    async def _checkout(self) -> _ToolWorker:
        slots = self._slots()
        worker = await slots.get()
        if worker is not None and worker.alive:
            return worker
        if worker is not None:
            self._workers.discard(worker)
        try:
            worker = await _ToolWorker.spawn(self.command, self.env)
        except BaseException:
            slots.put_nowait(None)
            raise
        self._workers.add(worker)
        return worker

    def _checkin(self, worker: _ToolWorker) -> None:
        if worker.alive:
            self._slots().put_nowait(worker)
        else:
            self._workers.discard(worker)
            self._slots().put_nowait(None)

    async def request(self, message: dict, timeout_s: float) -> str:
        worker = await self._checkout()
        try:
            return await worker.request(message, timeout_s)
        finally:
            self._checkin(worker)

    async def close(self) -> None:
        workers = list(self._workers)
        self._workers.clear()
        for worker in workers:
            if worker.alive:
                worker.process.stdin.close()
            await worker.kill()
        self._idle = None
        logger.debug("Tool worker pool closed", workers=len(workers))
