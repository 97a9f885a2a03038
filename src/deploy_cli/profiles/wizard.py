"""Interactive creation and removal of server profiles."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

from ..errors import ConfigError
from ..interaction import UserInteractionHandler
from ..ssh.credentials import Credential, PasswordCredential, PrivateKeyCredential
from .models import PROJECT_TYPES, Environment, ServerProfile, UploadMode, preset_for
from .store import ProfileStore

logger = logging.getLogger(__name__)

ConnectionTester = Callable[[ServerProfile], bool]


class ProfileWizard:
    """Collects a ServerProfile through the prompter and saves it in the store."""

    def __init__(
        self,
        store: ProfileStore,
        prompter: UserInteractionHandler,
        connection_tester: Optional[ConnectionTester] = None,
        default_local_path: str = ".",
    ) -> None:
        self.store = store
        self.prompter = prompter
        self.connection_tester = connection_tester
        self.default_local_path = default_local_path

    def add_server(self, name: Optional[str] = None) -> ServerProfile:
        ask = self.prompter
        name = name or ask.text("Server name (e.g. staging-web)")
        if not name:
            raise ConfigError("Server name is required")
        if self.store.exists and name in self.store.names():
            if not ask.confirm(f"Server {name} already exists. Overwrite?", default=False):
                raise ConfigError(f"Server {name} already exists")

        environment = ask.choose(
            "Environment",
            [env.value for env in Environment],
            default=Environment.STAGING.value,
        )
        host = ask.text("Server address")
        port_text = ask.text("SSH port", default="22")
        try:
            port = int(port_text)
        except ValueError:
            raise ConfigError(f"Invalid port: {port_text}") from None
        username = ask.text("Username", default="root")
        credential = self._ask_credential()

        deploy_path = ask.text("Deploy path", default="/var/www/html")
        backup_path = ask.text("Backup path", default="/var/backups/app")
        project_type = ask.choose("Project type", PROJECT_TYPES, default=PROJECT_TYPES[0])
        preset = preset_for(project_type)

        upload_mode = UploadMode.parse(
            ask.choose("Upload mode", [mode.value for mode in UploadMode], default=UploadMode.TREE.value)
        )
        local_path = "."
        if upload_mode is UploadMode.TREE:
            local_path = ask.text("Local build output directory", default=self.default_local_path)

        profile = ServerProfile(
            name=name,
            environment=Environment.parse(environment),
            host=host,
            port=port,
            username=username,
            credential=credential,
            deploy_path=deploy_path,
            backup_path=backup_path,
            upload_mode=upload_mode,
            local_path=local_path,
            build_command_local=ask.text("Local build command", default=preset.build_command_local),
            install_command_remote=ask.text("Remote install command", default=preset.install_command_remote),
            build_command_remote=ask.text("Remote build command", default=preset.build_command_remote),
            restart_command_remote=ask.text("Restart command", default=preset.restart_command_remote),
            verify_command_remote=ask.text("Verify command", default=preset.verify_command_remote),
            public_url=ask.text("Public URL (optional)") or None,
            project_type=project_type,
        )

        if not self.store.exists:
            self.store.init()
        self.store.add(profile)
        ask.notify(f"Server {name} saved", "success")

        if self.connection_tester and ask.confirm("Test the connection now?", default=True):
            if self.connection_tester(profile):
                ask.notify("Connection test passed", "success")
            else:
                ask.notify("Connection test failed, check the settings", "warning")
        return profile

    def remove_server(self, name: str) -> bool:
        if self.store.get(name) is None:
            raise ConfigError(f"Server {name} does not exist")
        if not self.prompter.confirm(f"Delete server {name}?", default=False):
            self.prompter.notify("Nothing removed", "info")
            return False
        removed = self.store.remove(name)
        if removed:
            self.prompter.notify(f"Server {name} removed", "success")
        return removed

    def _ask_credential(self) -> Credential:
        method = self.prompter.choose("Authentication", ["password", "key"], default="key")
        if method == "password":
            return PasswordCredential(self.prompter.secret("Password"))

        key_path = Path(self.prompter.text("Private key file", default="~/.ssh/id_rsa")).expanduser()
        try:
            material = key_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Cannot read private key {key_path}: {exc}") from exc
        passphrase = self.prompter.secret("Key passphrase (empty for none)") or None
        return PrivateKeyCredential(material, passphrase=passphrase)
