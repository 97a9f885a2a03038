"""SSH credential helpers."""

from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import paramiko

from ..errors import ConfigError

_KEY_CLASSES = (paramiko.RSAKey, paramiko.ECDSAKey, paramiko.Ed25519Key)


@dataclass(frozen=True)
class PasswordCredential:
    password: str

    def __post_init__(self) -> None:
        if not self.password:
            raise ConfigError("Password authentication selected but no password provided")

    def __repr__(self) -> str:
        return "PasswordCredential(password='***')"


@dataclass(frozen=True)
class PrivateKeyCredential:
    """Inline private key material (PEM/OpenSSH text) and optional passphrase."""

    key_material: str
    passphrase: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.key_material or not self.key_material.strip():
            raise ConfigError("Key authentication selected but no private key provided")

    def __repr__(self) -> str:
        return "PrivateKeyCredential(key_material='***')"


Credential = Union[PasswordCredential, PrivateKeyCredential]


def credential_from_dict(payload: Dict[str, Any]) -> Credential:
    """Build the credential variant from a persisted profile payload.

    Exactly one of ``password`` / ``privateKey`` must be present.
    """
    password = payload.get("password")
    private_key = payload.get("privateKey") or payload.get("private_key")
    if password and private_key:
        raise ConfigError("Profile defines both a password and a private key; keep only one")
    if password:
        return PasswordCredential(password=password)
    if private_key:
        return PrivateKeyCredential(
            key_material=private_key,
            passphrase=payload.get("passphrase") or None,
        )
    raise ConfigError("Profile defines neither a password nor a private key")


def credential_to_dict(credential: Credential) -> Dict[str, Any]:
    if isinstance(credential, PasswordCredential):
        return {"password": credential.password}
    payload: Dict[str, Any] = {"privateKey": credential.key_material}
    if credential.passphrase:
        payload["passphrase"] = credential.passphrase
    return payload


def load_private_key(credential: PrivateKeyCredential) -> paramiko.PKey:
    """Parse inline key material, trying each supported key type."""
    last_error: Optional[Exception] = None
    for key_class in _KEY_CLASSES:
        try:
            return key_class.from_private_key(
                io.StringIO(credential.key_material),
                password=credential.passphrase,
            )
        except paramiko.SSHException as exc:
            last_error = exc
    raise ConfigError(f"Unsupported or unreadable private key: {last_error}")
