"""
Process launching and output streaming.

``ProcessRunner.spawn`` starts one command through the configured shell,
drains stdout and stderr on dedicated reader threads as data arrives, splits
the raw chunks into lines and hands them to a callback. A watcher thread
reaps the process and resolves the handle's exit future only after both
streams have reached EOF. The runner owns no policy: it neither registers
handles nor decides what an exit code means.
"""

import codecs
import logging
import os
import signal
import subprocess
import threading
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Dict, IO, List, Mapping, Optional, Sequence

from ..models.config import AppConfig
from ..models.runtime import CapturedOutput, ProcessHandle, Task
from ..validation import SpawnError

logger = logging.getLogger(__name__)

STDOUT = "stdout"
STDERR = "stderr"

# Called with a batch of complete lines and the name of the stream they came from.
OutputCallback = Callable[[List[str], str], None]


class LineSplitter:
    """
    Incremental decoder that turns raw output chunks into complete lines.

    A trailing partial line is kept until a later chunk completes it or until
    ``flush`` is called at end of stream. Empty lines are dropped.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._pending = ""

    @property
    def pending(self) -> str:
        return self._pending

    def feed(self, chunk: bytes) -> List[str]:
        if not chunk:
            return []
        text = self._pending + self._decoder.decode(chunk)
        parts = text.split("\n")
        self._pending = parts.pop()
        return [line for line in (part.rstrip("\r") for part in parts) if line]

    def flush(self) -> List[str]:
        text = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        line = text.rstrip("\r")
        return [line] if line else []


class ProcessRunner:
    """
    Launches external commands with a merged environment.
    """

    # Seconds to wait for the output readers once the process itself exited.
    # A detached grandchild holding the pipes open must not hang completion.
    DRAIN_TIMEOUT = 10.0

    def __init__(
        self,
        shell: str = "/bin/bash",
        shell_args: Sequence[str] = ("-c",),
        base_env: Optional[Mapping[str, str]] = None,
        chunk_size: int = 65536,
    ):
        self.shell = shell
        self.shell_args = list(shell_args)
        self.base_env = dict(base_env or {})
        self.chunk_size = chunk_size

    @classmethod
    def from_config(cls, config: AppConfig) -> "ProcessRunner":
        return cls(
            shell=config.process.shell,
            shell_args=config.process.shell_args,
            base_env={"ANDROID_HOME": str(config.sdk.home)},
        )

    def build_env(self, env: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """Inherited environment, then the base overlay, then the caller's overlay."""
        merged = os.environ.copy()
        merged.update(self.base_env)
        if env:
            merged.update(env)
        return merged

    def spawn(
        self,
        command: str,
        env: Optional[Mapping[str, str]] = None,
        on_output: Optional[OutputCallback] = None,
        label: str = "",
        task: Optional[Task] = None,
    ) -> ProcessHandle:
        """
        Start ``command`` and begin streaming its output.

        Args:
            command: Command string handed to the shell as a single argument
            env: Variables overriding the inherited environment
            on_output: Receives batches of complete lines per stream
            label: Human readable name used in diagnostics
            task: Owning task, if any

        Returns:
            The handle of the running process

        Raises:
            SpawnError: If the process could not be started
        """
        argv = [self.shell, *self.shell_args, command]
        try:
            popen = subprocess.Popen(
                argv,
                env=self.build_env(env),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,  # own process group for tree kills
            )
        except OSError as e:
            logger.error(f"Could not spawn '{label or argv[0]}': {type(e).__name__}: {e}")
            raise SpawnError(command, e) from e

        handle = ProcessHandle(popen, command, label=label, task=task)
        logger.debug(f"Spawned '{label}' with PID {handle.pid}")

        readers = [
            threading.Thread(
                target=self._pump,
                args=(popen.stdout, STDOUT, on_output),
                name=f"{STDOUT}-{handle.pid}",
                daemon=True,
            ),
            threading.Thread(
                target=self._pump,
                args=(popen.stderr, STDERR, on_output),
                name=f"{STDERR}-{handle.pid}",
                daemon=True,
            ),
        ]
        for reader in readers:
            reader.start()

        threading.Thread(
            target=self._watch,
            args=(handle, readers),
            name=f"watch-{handle.pid}",
            daemon=True,
        ).start()
        return handle

    def capture(
        self,
        command: str,
        env: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        label: str = "",
    ) -> CapturedOutput:
        """
        Run a short query to completion and collect its output.

        On timeout the process group is killed and returncode -1 is reported.

        Raises:
            SpawnError: If the process could not be started
        """
        collected: Dict[str, List[str]] = {STDOUT: [], STDERR: []}

        def collect(lines: List[str], stream: str) -> None:
            collected[stream].extend(lines)

        handle = self.spawn(command, env=env, on_output=collect, label=label or command)
        try:
            process_exit = handle.exit_future.result(timeout=timeout)
            returncode = process_exit.returncode
        except FutureTimeoutError:
            logger.warning(f"Query '{handle.label}' timed out after {timeout}s, killing PID {handle.pid}")
            self._kill_group(handle.pid)
            handle.exit_future.result()
            returncode = -1

        return CapturedOutput(
            returncode=returncode,
            stdout=tuple(collected[STDOUT]),
            stderr=tuple(collected[STDERR]),
        )

    def _pump(self, stream: IO[bytes], name: str, on_output: Optional[OutputCallback]) -> None:
        """Drain one stream until EOF, forwarding complete lines."""
        splitter = LineSplitter()
        try:
            while True:
                chunk = stream.read1(self.chunk_size)
                if not chunk:
                    break
                self._deliver(on_output, splitter.feed(chunk), name)
            self._deliver(on_output, splitter.flush(), name)
        except (ValueError, OSError) as e:
            logger.warning(f"Reader for {name} stopped: {e}")
        finally:
            try:
                stream.close()
            except OSError as e:
                logger.debug(f"Error closing {name}: {e}")

    @staticmethod
    def _deliver(on_output: Optional[OutputCallback], lines: List[str], name: str) -> None:
        if not lines or on_output is None:
            return
        try:
            on_output(lines, name)
        except Exception as e:
            logger.error(f"Output callback failed for {name}: {e}", exc_info=True)

    def _watch(self, handle: ProcessHandle, readers: List[threading.Thread]) -> None:
        try:
            returncode = handle.popen.wait()
            for reader in readers:
                reader.join(timeout=self.DRAIN_TIMEOUT)
                if reader.is_alive():
                    logger.warning(
                        f"{reader.name} still open {self.DRAIN_TIMEOUT}s after PID {handle.pid} exited; "
                        "a background child is holding the pipe"
                    )
            result = handle.resolve(returncode)
            logger.debug(f"PID {handle.pid} exited with {result.returncode} (killed={result.killed})")
        except Exception as e:
            logger.error(f"Watcher for PID {handle.pid} failed: {e}", exc_info=True)
            handle.fail(e)

    @staticmethod
    def _kill_group(pid: int) -> None:
        try:
            os.killpg(pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        except PermissionError as e:
            logger.warning(f"No permission to kill process group {pid}: {e}")
