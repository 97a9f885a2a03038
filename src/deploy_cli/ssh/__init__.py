"""SSH utilities for deploy-cli."""

from .credentials import (
    Credential,
    PasswordCredential,
    PrivateKeyCredential,
    credential_from_dict,
    credential_to_dict,
    load_private_key,
)
from .session import (
    FileMapping,
    RemoteSession,
    RemoteStream,
    SSHCommandResult,
    SSHSession,
    default_exclude,
)
from .probe import DeployInfo, RemoteHostFacts, RemoteProbe, ServiceStatus

__all__ = [
    "Credential",
    "PasswordCredential",
    "PrivateKeyCredential",
    "credential_from_dict",
    "credential_to_dict",
    "load_private_key",
    "FileMapping",
    "RemoteSession",
    "RemoteStream",
    "SSHCommandResult",
    "SSHSession",
    "default_exclude",
    "DeployInfo",
    "RemoteHostFacts",
    "RemoteProbe",
    "ServiceStatus",
]
