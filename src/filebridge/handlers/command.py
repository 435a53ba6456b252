"""
=============================================================================
COMMAND BRIDGE
=============================================================================

POST /exec runs the request body as a shell command in the service root
and answers with what the command printed.

    POST /exec HTTP/1.0
    Content-Length: 5

    ls -l

=============================================================================
FLOW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  Content-Length absent or > 4096  ──►  400 (nothing is spawned)    │
    │                                                                      │
    │  read exactly Content-Length bytes ──short──►  500                  │
    │  (cut at the first NUL byte)                                        │
    │                                                                      │
    │  empty command  ──►  200, empty body (nothing is spawned)           │
    │                                                                      │
    │  /bin/sh -c <command>   (cwd = root, own process group)             │
    │      │  spawn fails  ──►  500                                       │
    │      ▼                                                               │
    │  read stdout into a 64 KiB buffer until full or EOF                 │
    │      │  full and more output pending  ──►  + "\\n[truncated]"       │
    │      ▼                                                               │
    │  200 text/plain, captured bytes                                     │
    └─────────────────────────────────────────────────────────────────────┘

The exit status is logged, never sent. Output of exactly the buffer
size followed by EOF is complete and carries no marker.

=============================================================================
TIMEOUT AND CANCELLATION
=============================================================================

run() accepts a timeout (seconds) and a threading.Event. A watchdog
thread waits for either one and then SIGKILLs the command's whole
process group, so children that inherited stdout cannot keep the pipe
open. What was captured up to that point is returned.

    bridge.run("sleep 60", timeout=2.0)           # killed after 2s
    bridge.run("make", cancel=stop_event)          # killed on stop_event.set()

Without a timeout or an event, a command that never exits stalls the
(single-threaded) server, exactly like any other blocking call.

=============================================================================
"""

import logging
import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Optional

from ..core.buffers import BoundedBuffer
from ..http.request import IncompleteBodyError, Request
from ..http.response import (
    HTTPResponse, ResponseBuilder, TEXT_PLAIN,
    bad_request, internal_error,
)


logger = logging.getLogger(__name__)


TRUNCATION_MARKER = b"\n[truncated]"


@dataclass
class CommandResult:
    """
    Outcome of one command run.

    Attributes:
        output: Captured stdout (plus the marker when truncated).
        truncated: More output existed than was captured.
        returncode: Exit status; negative for a signal. None if nothing ran.
        timed_out: The watchdog killed the command after the timeout.
        cancelled: The watchdog killed the command on the cancel event.
    """
    output: bytes = b""
    truncated: bool = False
    returncode: Optional[int] = None
    timed_out: bool = False
    cancelled: bool = False


class _Watchdog(threading.Thread):
    """Kills a process group on timeout or cancellation."""

    POLL_INTERVAL = 0.05

    def __init__(
        self,
        pgid: int,
        timeout: Optional[float],
        cancel: Optional[threading.Event],
    ):
        super().__init__(name=f"filebridge-watchdog-{pgid}", daemon=True)
        self.pgid = pgid
        self.deadline = None if timeout is None else time.monotonic() + timeout
        self.cancel = cancel
        self.finished = threading.Event()
        self.timed_out = False
        self.cancelled = False

    def run(self):
        while not self.finished.is_set():
            if self.cancel is not None and self.cancel.is_set():
                self.cancelled = True
                self._kill()
                return
            if self.deadline is not None and time.monotonic() >= self.deadline:
                self.timed_out = True
                self._kill()
                return
            self.finished.wait(self.POLL_INTERVAL)

    def _kill(self):
        try:
            os.killpg(self.pgid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            pass  # Group already gone

    def stop(self):
        self.finished.set()
        self.join()


class CommandBridge:
    """
    Runs shell commands on behalf of clients.

    Usage:
        bridge = CommandBridge(root_dir="/srv/share", timeout=30.0)
        router.add_route("POST", "/exec", bridge.handle)

        result = bridge.run("uname -a")
        result.output   # b"Linux ...\\n"
    """

    def __init__(
        self,
        root_dir: str = ".",
        shell: str = "/bin/sh",
        max_command_length: int = 4096,
        max_output_size: int = 65536,
        chunk_size: int = 4096,
        timeout: Optional[float] = None,
        capture_stderr: bool = False,
    ):
        self.root_dir = root_dir
        self.shell = shell
        self.max_command_length = max_command_length
        self.max_output_size = max_output_size
        self.chunk_size = chunk_size
        self.timeout = timeout
        self.capture_stderr = capture_stderr

    # =========================================================================
    # HTTP HANDLER
    # =========================================================================

    def handle(self, request: Request) -> HTTPResponse:
        length = request.declared_length
        if length is None or length > self.max_command_length:
            return bad_request("Content-Length missing or too large\n")

        body = BoundedBuffer(self.max_command_length)
        try:
            for chunk in request.iter_body(self.chunk_size):
                body.append(chunk)
        except IncompleteBodyError as e:
            logger.warning(f"Command body incomplete: {e}")
            return internal_error()

        command = os.fsdecode(bytes(body).split(b"\x00", 1)[0])

        if command:
            logger.info(f"Command from {request.client_address[0]}: {command!r}")
        try:
            result = self.run(command)
        except (OSError, subprocess.SubprocessError) as e:
            logger.error(f"Cannot run command: {e}")
            return internal_error()

        return (ResponseBuilder()
            .content_type(TEXT_PLAIN)
            .body(result.output)
            .build())

    # =========================================================================
    # EXECUTION
    # =========================================================================

    def run(
        self,
        command: str,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> CommandResult:
        """
        Run a command through the shell and capture its stdout.

        Args:
            command: Shell command line. An empty command runs nothing.
            timeout: Seconds before the command is killed. Defaults to the
                     bridge's configured timeout (None = unbounded).
            cancel: Event that kills the command when set.

        Raises:
            OSError: The shell could not be started.
        """
        if not command:
            return CommandResult()

        if timeout is None:
            timeout = self.timeout

        proc = subprocess.Popen(
            [self.shell, "-c", command],
            cwd=self.root_dir,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT if self.capture_stderr else None,
            bufsize=0,
            start_new_session=True,
        )

        watchdog = None
        if timeout is not None or cancel is not None:
            watchdog = _Watchdog(proc.pid, timeout, cancel)
            watchdog.start()

        try:
            output, truncated = self._capture(proc.stdout)
        finally:
            proc.stdout.close()
            returncode = proc.wait()
            if watchdog is not None:
                watchdog.stop()

        result = CommandResult(
            output=output,
            truncated=truncated,
            returncode=returncode,
            timed_out=watchdog is not None and watchdog.timed_out,
            cancelled=watchdog is not None and watchdog.cancelled,
        )

        if result.timed_out:
            logger.warning(f"Command killed after {timeout}s timeout: {command!r}")
        elif result.cancelled:
            logger.warning(f"Command cancelled: {command!r}")
        logger.info(
            f"Command exited with status {returncode} "
            f"({len(output)} bytes{', truncated' if truncated else ''})"
        )
        return result

    def _capture(self, stream) -> tuple:
        """
        Read stream into a bounded buffer.

        The buffer has room for max_output_size bytes of output plus the
        marker. Once max_output_size bytes are held, one extra byte read
        decides whether the output was cut short.

        Returns:
            (captured bytes, truncated flag)
        """
        captured = BoundedBuffer(self.max_output_size + len(TRUNCATION_MARKER))

        while len(captured) < self.max_output_size:
            chunk = stream.read(min(self.chunk_size, self.max_output_size - len(captured)))
            if not chunk:
                return bytes(captured), False
            captured.append(chunk)

        if not stream.read(1):
            return bytes(captured), False

        captured.append(TRUNCATION_MARKER)
        return bytes(captured), True
