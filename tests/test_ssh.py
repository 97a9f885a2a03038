import tempfile
import threading
import unittest
from pathlib import Path

import paramiko

from deploy_cli.errors import ConfigError, RemoteExecutionError, SSHConnectionError, TransferError
from deploy_cli.ssh import (
    FileMapping,
    PasswordCredential,
    PrivateKeyCredential,
    RemoteProbe,
    credential_from_dict,
    credential_to_dict,
    default_exclude,
    load_private_key,
)

from fakes import FakeSSHClient, ssh_session


class SSHSessionTests(unittest.TestCase):
    def test_run_command_uses_client_factory(self) -> None:
        client = FakeSSHClient()
        with ssh_session(client) as session:
            result = session.run("echo test")
        self.assertTrue(result.ok)
        self.assertEqual(result.stdout, "ok")
        self.assertEqual(client.kwargs["password"], "secret")
        self.assertFalse(client.kwargs["look_for_keys"])
        self.assertTrue(client.closed)

    def test_execute_prefixes_working_directory(self) -> None:
        client = FakeSSHClient()
        session = ssh_session(client)
        session.connect()
        session.execute("npm install", cwd="/var/www/my app")
        self.assertEqual(client.commands[-1], "cd '/var/www/my app' && npm install")

    def test_execute_raises_on_non_zero_exit(self) -> None:
        client = FakeSSHClient()
        client.statuses = {"false": 1}
        session = ssh_session(client)
        session.connect()
        with self.assertRaises(RemoteExecutionError) as ctx:
            session.execute("false")
        self.assertEqual(ctx.exception.exit_status, 1)
        self.assertEqual(ctx.exception.stderr, "boom")

    def test_execute_without_connect_raises(self) -> None:
        with self.assertRaises(SSHConnectionError):
            ssh_session(FakeSSHClient()).execute("uptime")

    def test_connect_failure_closes_client(self) -> None:
        client = FakeSSHClient()
        client.connect_error = paramiko.AuthenticationException("bad password")
        session = ssh_session(client)
        with self.assertRaises(SSHConnectionError):
            session.connect()
        self.assertTrue(client.closed)
        self.assertFalse(session.connected)

    def test_disconnect_is_idempotent(self) -> None:
        client = FakeSSHClient()
        session = ssh_session(client)
        session.disconnect()
        session.connect()
        session.disconnect()
        session.disconnect()
        self.assertTrue(client.closed)

    def test_transport_failure_becomes_connection_error(self) -> None:
        client = FakeSSHClient()
        client.errors = {"npm install": paramiko.SSHException("SSH session not active")}
        session = ssh_session(client)
        session.connect()
        with self.assertRaises(SSHConnectionError) as ctx:
            session.execute("npm install", cwd="/var/www/app")
        self.assertIn("SSH session not active", str(ctx.exception))
        self.assertIsInstance(ctx.exception.__cause__, paramiko.SSHException)

    def test_socket_error_becomes_connection_error(self) -> None:
        client = FakeSSHClient()
        client.errors = {"uptime": OSError("Connection reset by peer")}
        session = ssh_session(client)
        session.connect()
        with self.assertRaises(SSHConnectionError):
            session.run("uptime")

    def test_existence_checks_collapse_errors_to_false(self) -> None:
        client = FakeSSHClient()
        client.statuses = {"test -f /missing": 1}
        session = ssh_session(client)
        self.assertFalse(session.file_exists("/etc/hosts"))  # not connected
        session.connect()
        self.assertTrue(session.file_exists("/etc/hosts"))
        self.assertFalse(session.file_exists("/missing"))
        self.assertTrue(session.directory_exists("/var/www"))
        client.errors = {"test -d": OSError("broken pipe")}
        self.assertFalse(session.directory_exists("/var/www"))

    def test_upload_tree_skips_excluded_entries(self) -> None:
        client = FakeSSHClient()
        session = ssh_session(client, upload_concurrency=3)
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "index.html").write_text("hi", encoding="utf-8")
            (root / ".env").write_text("SECRET=1", encoding="utf-8")
            (root / "assets").mkdir()
            (root / "assets" / "app.js").write_text("js", encoding="utf-8")
            (root / "node_modules" / "left-pad").mkdir(parents=True)
            (root / "node_modules" / "left-pad" / "index.js").write_text("x", encoding="utf-8")
            (root / ".git").mkdir()
            (root / ".git" / "HEAD").write_text("ref", encoding="utf-8")

            session.connect()
            session.upload_tree(str(root), "/var/www/app")

        remotes = sorted(remote for _, remote in client.uploads)
        self.assertEqual(remotes, ["/var/www/app/assets/app.js", "/var/www/app/index.html"])
        self.assertIn("mkdir -p /var/www/app /var/www/app/assets", client.commands)

    def test_upload_tree_reports_failed_files(self) -> None:
        client = FakeSSHClient()
        client.broken_files = {"b.txt"}
        session = ssh_session(client)
        with tempfile.TemporaryDirectory() as tmp:
            for name in ("a.txt", "b.txt"):
                (Path(tmp) / name).write_text(name, encoding="utf-8")
            session.connect()
            with self.assertRaises(TransferError) as ctx:
                session.upload_tree(tmp, "/srv")
        self.assertIn("1 of 2", str(ctx.exception))

    def test_upload_tree_requires_local_directory(self) -> None:
        session = ssh_session(FakeSSHClient())
        session.connect()
        with self.assertRaises(TransferError):
            session.upload_tree("/definitely/not/here", "/srv")

    def test_upload_files_maps_remote_names(self) -> None:
        client = FakeSSHClient()
        session = ssh_session(client)
        with tempfile.TemporaryDirectory() as tmp:
            local = Path(tmp) / "prod.env"
            local.write_text("A=1", encoding="utf-8")
            session.connect()
            session.upload_files([FileMapping(str(local), "config/.env")], "/srv/app")
        self.assertEqual(client.uploads, [(str(local), "/srv/app/config/.env")])
        self.assertIn("mkdir -p /srv/app /srv/app/config", client.commands)

    def test_upload_files_rejects_missing_local_file(self) -> None:
        session = ssh_session(FakeSSHClient())
        session.connect()
        with self.assertRaises(TransferError):
            session.upload_files([FileMapping("/nope/app.js")], "/srv/app")


class ExcludeTests(unittest.TestCase):
    def test_default_exclude(self) -> None:
        self.assertTrue(default_exclude("/build/.env"))
        self.assertTrue(default_exclude("/build/node_modules"))
        self.assertTrue(default_exclude("/build/.git/"))
        self.assertFalse(default_exclude("/build/index.html"))
        self.assertFalse(default_exclude("/build/assets"))


class CredentialTests(unittest.TestCase):
    def test_exactly_one_credential_kind(self) -> None:
        with self.assertRaises(ConfigError):
            credential_from_dict({"password": "x", "privateKey": "-----BEGIN"})
        with self.assertRaises(ConfigError):
            credential_from_dict({})

    def test_round_trip_keeps_variant(self) -> None:
        key = credential_from_dict({"privateKey": "KEY DATA", "passphrase": "pp"})
        self.assertIsInstance(key, PrivateKeyCredential)
        self.assertEqual(credential_to_dict(key), {"privateKey": "KEY DATA", "passphrase": "pp"})
        self.assertEqual(credential_to_dict(PasswordCredential("pw")), {"password": "pw"})

    def test_empty_material_is_rejected(self) -> None:
        with self.assertRaises(ConfigError):
            PasswordCredential("")
        with self.assertRaises(ConfigError):
            PrivateKeyCredential("   ")

    def test_repr_hides_secrets(self) -> None:
        self.assertNotIn("hunter2", repr(PasswordCredential("hunter2")))

    def test_unreadable_key_is_config_error(self) -> None:
        with self.assertRaises(ConfigError):
            load_private_key(PrivateKeyCredential("not a key"))

    def test_inline_rsa_key_loads(self) -> None:
        import io

        generated = paramiko.RSAKey.generate(2048)
        buffer = io.StringIO()
        generated.write_private_key(buffer)
        loaded = load_private_key(PrivateKeyCredential(buffer.getvalue()))
        self.assertEqual(loaded.get_fingerprint(), generated.get_fingerprint())


class RemoteProbeTests(unittest.TestCase):
    class StubSession:
        def __init__(self, outputs=None, files=()) -> None:
            self.commands = []
            self.outputs = outputs or {}
            self.files = set(files)
            self.lock = threading.Lock()

        def execute(self, command: str, cwd=None) -> str:
            with self.lock:
                self.commands.append(command)
            for prefix, output in self.outputs.items():
                if command.startswith(prefix):
                    if isinstance(output, Exception):
                        raise output
                    return output
            return command.upper()

        def file_exists(self, path: str) -> bool:
            return path in self.files

    def test_remote_probe_collects_fields(self) -> None:
        session = self.StubSession()
        facts = RemoteProbe().collect(session)  # type: ignore[arg-type]
        self.assertEqual(facts.hostname, "HOSTNAME")
        self.assertEqual(facts.os, "UNAME -A")
        self.assertEqual(len(session.commands), 4)

    def test_deploy_info_prefers_marker_file(self) -> None:
        session = self.StubSession(
            outputs={"cat /srv/app/.deploy-info": '{"lastDeploy": "2024-05-01", "version": "1.4.0"}'},
            files={"/srv/app/.deploy-info"},
        )
        info = RemoteProbe().deploy_info(session, "/srv/app")  # type: ignore[arg-type]
        self.assertEqual(info.last_deploy, "2024-05-01")
        self.assertEqual(info.current_version, "1.4.0")

    def test_deploy_info_falls_back_to_stat_and_package_json(self) -> None:
        session = self.StubSession(
            outputs={
                "stat -c %y": "2024-05-02 10:00:00",
                "cat /srv/app/package.json": '{"version": "2.0.1"}',
            },
            files={"/srv/app/package.json"},
        )
        info = RemoteProbe().deploy_info(session, "/srv/app")  # type: ignore[arg-type]
        self.assertEqual(info.last_deploy, "2024-05-02 10:00:00")
        self.assertEqual(info.current_version, "2.0.1")

    def test_service_probes_swallow_errors(self) -> None:
        session = self.StubSession(
            outputs={
                "systemctl is-active nginx": "active",
                "systemctl is-active apache2": "inactive",
                "systemctl is-active pm2": RemoteExecutionError("systemctl", 1, ""),
                "pm2 jlist": '[{"name": "api", "pm2_env": {"status": "online"}}]',
            }
        )
        services = RemoteProbe().service_statuses(session)  # type: ignore[arg-type]
        self.assertEqual([(s.name, s.status) for s in services], [("nginx", "active"), ("pm2-api", "online")])
        self.assertTrue(all(s.active for s in services))


if __name__ == "__main__":
    unittest.main()
