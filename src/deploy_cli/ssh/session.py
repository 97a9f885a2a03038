"""SSH session management built on Paramiko."""

from __future__ import annotations

import logging
import os
import posixpath
import shlex
import socket
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterator, List, Optional, Sequence, Tuple

import paramiko

from ..errors import RemoteExecutionError, SSHConnectionError, TransferError
from .credentials import Credential, PasswordCredential, load_private_key

if TYPE_CHECKING:
    from ..profiles.models import ServerProfile

logger = logging.getLogger(__name__)

EXCLUDED_NAMES = frozenset({"node_modules", ".git", ".hg", ".svn"})

# mkdir -p is issued in batches to stay under the remote argv limit
_MKDIR_BATCH = 100


def default_exclude(path: str) -> bool:
    """Return True for paths that must never be uploaded."""
    name = os.path.basename(os.path.normpath(path))
    return name.startswith(".") or name in EXCLUDED_NAMES


@dataclass(frozen=True)
class FileMapping:
    """One explicit upload: ``local`` path, optional ``remote`` path relative to the target."""

    local: str
    remote: Optional[str] = None

    @property
    def target(self) -> str:
        return self.remote or self.local


@dataclass
class SSHCommandResult:
    command: str
    stdout: str
    stderr: str
    exit_status: int

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class RemoteStream:
    """Line iterator over a long-running remote command.

    ``close()`` may be called from another thread or a signal handler; the
    reader notices within one poll interval and iteration ends.
    """

    POLL_INTERVAL = 0.5

    def __init__(self, channel: paramiko.Channel) -> None:
        self._channel = channel
        self._closed = False
        channel.settimeout(self.POLL_INTERVAL)

    def __iter__(self) -> Iterator[str]:
        buffer = b""
        try:
            while not self._closed:
                try:
                    chunk = self._channel.recv(4096)
                except socket.timeout:
                    continue
                if not chunk:
                    break
                buffer += chunk
                while b"\n" in buffer:
                    line, buffer = buffer.split(b"\n", 1)
                    yield line.decode("utf-8", errors="replace")
            if buffer and not self._closed:
                yield buffer.decode("utf-8", errors="replace")
        finally:
            self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._channel.close()


class RemoteSession(ABC):
    """One authenticated remote connection, exclusively owned by its caller."""

    @abstractmethod
    def connect(self) -> None:
        """Open the connection; raises SSHConnectionError on failure."""

    @abstractmethod
    def execute(self, command: str, cwd: Optional[str] = None) -> str:
        """Run ``command`` and return stdout; raises RemoteExecutionError on non-zero exit."""

    @abstractmethod
    def file_exists(self, path: str) -> bool:
        """Never raises; connection problems count as "missing"."""

    @abstractmethod
    def directory_exists(self, path: str) -> bool:
        """Never raises; connection problems count as "missing"."""

    @abstractmethod
    def upload_tree(
        self,
        local_dir: str,
        remote_dir: str,
        exclude: Callable[[str], bool] = default_exclude,
    ) -> None:
        """Recursively copy ``local_dir`` into ``remote_dir``; raises TransferError."""

    @abstractmethod
    def upload_files(self, files: Sequence[FileMapping], remote_dir: str) -> None:
        """Copy an explicit file list into ``remote_dir``; raises TransferError."""

    @abstractmethod
    def stream(self, command: str) -> RemoteStream:
        """Start ``command`` and return a closable line stream over its output."""

    @abstractmethod
    def disconnect(self) -> None:
        """Release the connection. Safe to call repeatedly or before connect()."""

    def __enter__(self) -> "RemoteSession":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.disconnect()


class SSHSession(RemoteSession):
    """High-level wrapper around paramiko.SSHClient."""

    def __init__(
        self,
        host: str,
        username: str,
        credential: Credential,
        *,
        port: int = 22,
        timeout: int = 20,
        upload_concurrency: int = 10,
        client_factory: Callable[[], paramiko.SSHClient] | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.credential = credential
        self.timeout = timeout
        self.upload_concurrency = max(1, upload_concurrency)
        self._client_factory = client_factory or paramiko.SSHClient
        self._client: Optional[paramiko.SSHClient] = None

    @classmethod
    def from_profile(
        cls,
        profile: "ServerProfile",
        *,
        timeout: int = 20,
        upload_concurrency: int = 10,
        client_factory: Callable[[], paramiko.SSHClient] | None = None,
    ) -> "SSHSession":
        return cls(
            host=profile.host,
            username=profile.username,
            credential=profile.credential,
            port=profile.port,
            timeout=timeout,
            upload_concurrency=upload_concurrency,
            client_factory=client_factory,
        )

    @property
    def connected(self) -> bool:
        return self._client is not None

    def connect(self) -> None:
        if self._client:
            return
        connect_kwargs = {
            "hostname": self.host,
            "port": self.port,
            "username": self.username,
            "timeout": self.timeout,
            "look_for_keys": False,
            "allow_agent": False,
        }
        if isinstance(self.credential, PasswordCredential):
            connect_kwargs["password"] = self.credential.password
        else:
            connect_kwargs["pkey"] = load_private_key(self.credential)

        client = self._client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(**connect_kwargs)
        except Exception as exc:
            client.close()
            raise SSHConnectionError(
                f"SSH connection to {self.username}@{self.host}:{self.port} failed: {exc}"
            ) from exc
        self._client = client
        logger.info("Connected to %s@%s:%s", self.username, self.host, self.port)

    def disconnect(self) -> None:
        if self._client:
            self._client.close()
            self._client = None
            logger.info("Disconnected from %s", self.host)

    def _require_client(self) -> paramiko.SSHClient:
        if not self._client:
            raise SSHConnectionError(f"Not connected to {self.host}")
        return self._client

    def run(self, command: str, cwd: Optional[str] = None) -> SSHCommandResult:
        """Execute a command and return its result without raising on failure."""
        client = self._require_client()
        actual_command = f"cd {shlex.quote(cwd)} && {command}" if cwd else command
        logger.debug("[%s] $ %s", self.host, actual_command)

        try:
            _, stdout, stderr = client.exec_command(actual_command)
            stdout_text = stdout.read().decode("utf-8", errors="replace")
            stderr_text = stderr.read().decode("utf-8", errors="replace")
            exit_status = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, OSError) as exc:
            raise SSHConnectionError(f"Lost connection to {self.host}: {exc}") from exc

        if stdout_text.strip():
            logger.debug("[%s] %s", self.host, stdout_text.strip())
        return SSHCommandResult(
            command=command,
            stdout=stdout_text.strip(),
            stderr=stderr_text.strip(),
            exit_status=exit_status,
        )

    def execute(self, command: str, cwd: Optional[str] = None) -> str:
        result = self.run(command, cwd=cwd)
        if not result.ok:
            raise RemoteExecutionError(command, result.exit_status, result.stderr)
        return result.stdout

    def file_exists(self, path: str) -> bool:
        return self._test("-f", path)

    def directory_exists(self, path: str) -> bool:
        return self._test("-d", path)

    def _test(self, flag: str, path: str) -> bool:
        try:
            return self.run(f"test {flag} {shlex.quote(path)}").ok
        except SSHConnectionError as exc:
            logger.debug("Existence check for %s failed: %s", path, exc)
            return False

    def create_directories(self, paths: Sequence[str]) -> None:
        for start in range(0, len(paths), _MKDIR_BATCH):
            batch = paths[start:start + _MKDIR_BATCH]
            self.execute("mkdir -p " + " ".join(shlex.quote(p) for p in batch))

    def upload_tree(
        self,
        local_dir: str,
        remote_dir: str,
        exclude: Callable[[str], bool] = default_exclude,
    ) -> None:
        local_root = Path(local_dir)
        if not local_root.is_dir():
            raise TransferError(f"Local directory does not exist: {local_root}")

        directories, files = _collect_tree(local_root, exclude)
        client = self._require_client()
        try:
            self.create_directories(
                [remote_dir] + [posixpath.join(remote_dir, rel) for rel in directories]
            )
        except RemoteExecutionError as exc:
            raise TransferError(f"Could not create remote directories: {exc}") from exc

        if not files:
            logger.info("Nothing to upload from %s", local_root)
            return

        transfers = [
            (str(local_root / rel), posixpath.join(remote_dir, rel)) for rel in files
        ]
        workers = min(self.upload_concurrency, len(transfers))
        batches = [transfers[i::workers] for i in range(workers)]

        failures: List[Tuple[str, str]] = []
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(_put_batch, client, batch) for batch in batches]
            for future in futures:
                failures.extend(future.result())

        if failures:
            detail = "; ".join(f"{path}: {error}" for path, error in failures[:5])
            raise TransferError(f"{len(failures)} of {len(transfers)} file(s) failed to upload ({detail})")
        logger.info("Uploaded %d file(s): %s -> %s", len(transfers), local_root, remote_dir)

    def upload_files(self, files: Sequence[FileMapping], remote_dir: str) -> None:
        transfers = []
        for mapping in files:
            local_path = Path(mapping.local)
            if not local_path.is_file():
                raise TransferError(f"Local file does not exist: {local_path}")
            transfers.append((str(local_path), posixpath.join(remote_dir, mapping.target)))

        client = self._require_client()
        parents = sorted({posixpath.dirname(remote) for _, remote in transfers})
        try:
            self.create_directories([remote_dir] + [p for p in parents if p])
        except RemoteExecutionError as exc:
            raise TransferError(f"Could not create remote directories: {exc}") from exc

        failures = _put_batch(client, transfers)
        if failures:
            path, error = failures[0]
            raise TransferError(f"Upload of {path} failed: {error}")
        logger.info("Uploaded %d file(s) to %s", len(transfers), remote_dir)

    def stream(self, command: str) -> RemoteStream:
        client = self._require_client()
        transport = client.get_transport()
        if transport is None or not transport.is_active():
            raise SSHConnectionError(f"Connection to {self.host} is no longer active")
        logger.debug("[%s] $ %s (streaming)", self.host, command)
        try:
            channel = transport.open_session()
            channel.set_combine_stderr(True)
            channel.exec_command(command)
        except (paramiko.SSHException, OSError) as exc:
            raise SSHConnectionError(f"Could not start `{command}` on {self.host}: {exc}") from exc
        return RemoteStream(channel)


def _collect_tree(
    local_root: Path, exclude: Callable[[str], bool]
) -> Tuple[List[str], List[str]]:
    """Walk ``local_root`` returning POSIX-relative directories and files, pruning excluded names."""
    directories: List[str] = []
    files: List[str] = []
    for current, dirnames, filenames in os.walk(local_root):
        dirnames[:] = sorted(d for d in dirnames if not exclude(os.path.join(current, d)))
        rel_dir = Path(current).relative_to(local_root)
        for name in dirnames:
            directories.append((rel_dir / name).as_posix())
        for name in sorted(filenames):
            if not exclude(os.path.join(current, name)):
                files.append((rel_dir / name).as_posix())
    return directories, files


def _put_batch(
    client: paramiko.SSHClient, transfers: Sequence[Tuple[str, str]]
) -> List[Tuple[str, str]]:
    """Copy files over one SFTP channel; returns (path, error) for failures."""
    failures: List[Tuple[str, str]] = []
    try:
        sftp = client.open_sftp()
    except (OSError, paramiko.SSHException) as exc:
        return [(local, f"cannot open SFTP channel: {exc}") for local, _ in transfers]
    try:
        for local, remote in transfers:
            try:
                sftp.put(local, remote)
                logger.debug("  %s -> %s", local, remote)
            except (OSError, paramiko.SSHException) as exc:
                logger.warning("Upload failed: %s (%s)", local, exc)
                failures.append((local, str(exc)))
    finally:
        sftp.close()
    return failures
