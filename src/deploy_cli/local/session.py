"""Local command execution session."""

from __future__ import annotations

import logging
import os
import selectors
import subprocess
import sys
import time
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 1800


@dataclass
class LocalCommandResult:
    """Result of executing a local command."""
    command: str
    stdout: str
    stderr: str
    exit_status: int

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class LocalSession:
    """
    Runs shell commands in the local working tree (used for the local build).

    Mirrors the shape of SSHSession.run so stage code reads the same for
    local and remote commands.
    """

    def __init__(self, working_dir: Optional[str] = None, shell: str = "/bin/bash") -> None:
        self.working_dir = working_dir or os.getcwd()
        self.shell = shell

    def run(
        self,
        command: str,
        *,
        timeout: Optional[int] = None,
        stream_output: bool = True,
    ) -> LocalCommandResult:
        """
        Execute a command locally.

        Args:
            command: The command to execute
            timeout: Total timeout in seconds (default: 30 minutes)
            stream_output: Echo output to the terminal while the command runs

        Returns:
            LocalCommandResult; a timeout is reported as exit status -1
        """
        if timeout is None:
            timeout = DEFAULT_TIMEOUT
        logger.debug("(local) $ %s", command)
        if stream_output:
            return self._run_streaming(command, timeout)
        return self._run_blocking(command, timeout)

    def _run_blocking(self, command: str, timeout: int) -> LocalCommandResult:
        try:
            result = subprocess.run(
                command,
                shell=True,
                capture_output=True,
                text=True,
                timeout=timeout,
                cwd=self.working_dir,
                executable=self.shell,
            )
        except subprocess.TimeoutExpired:
            return LocalCommandResult(
                command=command,
                stdout="",
                stderr=f"Command timed out after {timeout} seconds",
                exit_status=-1,
            )
        return LocalCommandResult(
            command=command,
            stdout=result.stdout.strip(),
            stderr=result.stderr.strip(),
            exit_status=result.returncode,
        )

    def _run_streaming(self, command: str, timeout: int) -> LocalCommandResult:
        process = subprocess.Popen(
            command,
            shell=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            cwd=self.working_dir,
            executable=self.shell,
        )
        stdout_chunks = []
        stderr_chunks = []
        start_time = time.time()

        sel = selectors.DefaultSelector()
        sel.register(process.stdout, selectors.EVENT_READ)
        sel.register(process.stderr, selectors.EVENT_READ)
        try:
            while process.poll() is None:
                for key, _ in sel.select(timeout=0.1):
                    line = key.fileobj.readline()
                    if line:
                        self._echo(key.fileobj is process.stdout, line, stdout_chunks, stderr_chunks)

                if time.time() - start_time > timeout:
                    process.kill()
                    process.wait()
                    return LocalCommandResult(
                        command=command,
                        stdout="".join(stdout_chunks).strip(),
                        stderr=f"Command exceeded {timeout} seconds total execution time",
                        exit_status=-1,
                    )

            # Drain whatever is left after exit
            for line in process.stdout:
                self._echo(True, line, stdout_chunks, stderr_chunks)
            for line in process.stderr:
                self._echo(False, line, stdout_chunks, stderr_chunks)
        finally:
            sel.close()
            process.stdout.close()
            process.stderr.close()

        return LocalCommandResult(
            command=command,
            stdout="".join(stdout_chunks).strip(),
            stderr="".join(stderr_chunks).strip(),
            exit_status=process.returncode,
        )

    @staticmethod
    def _echo(is_stdout: bool, line: str, stdout_chunks: list, stderr_chunks: list) -> None:
        if is_stdout:
            stdout_chunks.append(line)
            sys.stdout.write(line)
            sys.stdout.flush()
        else:
            stderr_chunks.append(line)
            sys.stderr.write(line)
            sys.stderr.flush()
