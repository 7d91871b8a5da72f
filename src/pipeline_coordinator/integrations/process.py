"""Process execution utilities for tool integrations."""

import logging
import os
import subprocess
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Callable, List, Mapping, Optional, Tuple, Union

from ..errors import ProcessCancelledError, ProcessFailedError

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    """Result of a process execution."""

    code: int
    stdout: str
    stderr: str
    ok: bool = False
    details: str = ""

    def __post_init__(self):
        self.ok = self.code == 0
        if not self.details:
            self.details = self.stderr if self.stderr else "Process completed"

    def lines(self) -> List[str]:
        """Return stdout split into lines, without line terminators."""
        return self.stdout.splitlines()


@dataclass(frozen=True)
class CommandSpec:
    """Immutable description of an external command.

    Every ``with_*`` method returns a new ``CommandSpec``; the receiver is
    never modified, so a configured base command can be shared freely.
    """

    program: str
    arguments: Tuple[str, ...] = ()
    working_directory: Optional[str] = None
    environment: Mapping[str, str] = field(default_factory=dict)
    validate_exit_code: bool = True

    def with_arguments(self, *arguments: Union[str, os.PathLike]) -> "CommandSpec":
        return replace(self, arguments=tuple(str(arg) for arg in arguments))

    def with_working_directory(
        self, working_directory: Union[str, os.PathLike, None]
    ) -> "CommandSpec":
        directory = str(working_directory) if working_directory is not None else None
        return replace(self, working_directory=directory)

    def with_environment(self, **variables: str) -> "CommandSpec":
        merged = dict(self.environment)
        merged.update(variables)
        return replace(self, environment=merged)

    def with_validation(self, validate_exit_code: bool) -> "CommandSpec":
        return replace(self, validate_exit_code=validate_exit_code)

    def argv(self) -> List[str]:
        return [self.program, *self.arguments]

    def display(self) -> str:
        """Render the command line for logs."""
        return " ".join(_quote(part) for part in self.argv())


def _quote(part: str) -> str:
    return f'"{part}"' if " " in part else part


class ProcessRunner:
    """Execute external processes with proper error handling and dry-run support."""

    def __init__(self, dry_run: bool = False, poll_interval: float = 0.2):
        """Initialize ProcessRunner.

        Args:
            dry_run: If True, commands will be logged but not executed
            poll_interval: Seconds between checks of a cancel event
        """
        self.dry_run = dry_run
        self.poll_interval = poll_interval
        self.logger = logging.getLogger(__name__)

    def run(
        self, spec: CommandSpec, cancel_event: Optional[threading.Event] = None
    ) -> ProcessResult:
        """Run a command and return the result.

        There is no timeout and no retry. When ``cancel_event`` is set while
        the command runs, only that process is killed and
        ``ProcessCancelledError`` is raised.

        Args:
            spec: Command to execute
            cancel_event: Optional cancellation signal

        Returns:
            ProcessResult with execution details

        Raises:
            ProcessFailedError: If ``spec`` validates the exit code and it is non-zero
            ProcessCancelledError: If the command was cancelled
        """
        cmd_str = spec.display()
        where = f" (in {spec.working_directory})" if spec.working_directory else ""
        self.logger.info(f"{'[DRY RUN] ' if self.dry_run else ''}Running: {cmd_str}{where}")

        if self.dry_run:
            return ProcessResult(
                code=0,
                stdout=f"[DRY RUN] Would execute: {cmd_str}",
                stderr="",
                details="Dry run - command not executed",
            )

        if cancel_event is not None and cancel_event.is_set():
            raise ProcessCancelledError(f"Cancelled before start: {cmd_str}")

        env = None
        if spec.environment:
            env = dict(os.environ)
            env.update(spec.environment)

        try:
            process = subprocess.Popen(
                spec.argv(),
                cwd=spec.working_directory,
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as e:
            result = ProcessResult(
                code=-1,
                stdout="",
                stderr=str(e),
                details=f"Process execution failed: {e}",
            )
            return self._validated(spec, result)

        if cancel_event is None:
            stdout, stderr = process.communicate()
        else:
            stdout, stderr = self._communicate_until_cancelled(
                process, cancel_event, cmd_str
            )

        result = ProcessResult(
            code=process.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            details=stderr if process.returncode != 0 else "Success",
        )
        if not result.ok:
            self.logger.warning(f"Exit code {result.code} from: {cmd_str}")
        return self._validated(spec, result)

    def _communicate_until_cancelled(
        self,
        process: subprocess.Popen,
        cancel_event: threading.Event,
        cmd_str: str,
    ) -> Tuple[str, str]:
        while True:
            try:
                return process.communicate(timeout=self.poll_interval)
            except subprocess.TimeoutExpired:
                if cancel_event.is_set():
                    process.kill()
                    process.communicate()
                    self.logger.warning(f"Cancelled: {cmd_str}")
                    raise ProcessCancelledError(f"Cancelled: {cmd_str}")

    @staticmethod
    def _validated(spec: CommandSpec, result: ProcessResult) -> ProcessResult:
        if spec.validate_exit_code and not result.ok:
            raise ProcessFailedError(spec.display(), result)
        return result

    def get_tool_version(
        self, tool_name: str, version_arg: str = "--version"
    ) -> Optional[str]:
        """Get version information for a tool.

        Args:
            tool_name: Name of the tool
            version_arg: Argument to get version (default: --version)

        Returns:
            Version string if successful, None otherwise
        """
        spec = CommandSpec(tool_name).with_arguments(version_arg).with_validation(False)
        result = self.run(spec)
        if result.ok:
            return result.stdout.strip()
        return None


ResponseHandler = Callable[[CommandSpec], ProcessResult]


@dataclass
class FakeResponse:
    """Canned behaviour for commands matched by ``FakeProcessRunner``."""

    stdout: str = ""
    stderr: str = ""
    code: int = 0
    delay: float = 0.0
    error: Optional[BaseException] = None
    handler: Optional[ResponseHandler] = None


class FakeProcessRunner:
    """Deterministic stand-in for ``ProcessRunner``.

    Responses are registered per program and argument prefix; the most
    recently registered matching prefix wins. Unmatched commands succeed with
    empty output. Every command is recorded in ``calls``.
    """

    def __init__(self):
        self.dry_run = False
        self.calls: List[CommandSpec] = []
        self._responses: List[Tuple[Tuple[str, ...], FakeResponse]] = []
        self._lock = threading.Lock()

    def respond(
        self,
        program: str,
        *arguments: Union[str, os.PathLike],
        stdout: str = "",
        stderr: str = "",
        code: int = 0,
        delay: float = 0.0,
        error: Optional[BaseException] = None,
        handler: Optional[ResponseHandler] = None,
    ) -> "FakeProcessRunner":
        prefix = (program, *(str(arg) for arg in arguments))
        response = FakeResponse(stdout, stderr, code, delay, error, handler)
        with self._lock:
            self._responses.insert(0, (prefix, response))
        return self

    def run(
        self, spec: CommandSpec, cancel_event: Optional[threading.Event] = None
    ) -> ProcessResult:
        with self._lock:
            self.calls.append(spec)
            response = self._match(spec)

        if response.delay:
            if cancel_event is not None:
                if cancel_event.wait(response.delay):
                    raise ProcessCancelledError(f"Cancelled: {spec.display()}")
            else:
                time.sleep(response.delay)
        elif cancel_event is not None and cancel_event.is_set():
            raise ProcessCancelledError(f"Cancelled: {spec.display()}")

        if response.error is not None:
            raise response.error

        if response.handler is not None:
            result = response.handler(spec)
        else:
            result = ProcessResult(
                code=response.code, stdout=response.stdout, stderr=response.stderr
            )
        return ProcessRunner._validated(spec, result)

    def _match(self, spec: CommandSpec) -> FakeResponse:
        argv = tuple(spec.argv())
        for prefix, response in self._responses:
            if argv[: len(prefix)] == prefix:
                return response
        return FakeResponse()

    def commands(self) -> List[str]:
        """Return the recorded command lines in call order."""
        with self._lock:
            return [spec.display() for spec in self.calls]

    def arguments_for(self, program: str) -> List[Tuple[str, ...]]:
        with self._lock:
            return [spec.arguments for spec in self.calls if spec.program == program]

    def get_tool_version(
        self, tool_name: str, version_arg: str = "--version"
    ) -> Optional[str]:
        spec = CommandSpec(tool_name).with_arguments(version_arg).with_validation(False)
        result = self.run(spec)
        return result.stdout.strip() if result.ok else None


Runner = Union[ProcessRunner, FakeProcessRunner]

__all__: List[str] = [
    "CommandSpec",
    "FakeProcessRunner",
    "FakeResponse",
    "ProcessResult",
    "ProcessRunner",
    "Runner",
]

