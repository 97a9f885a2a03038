import io
import os
import signal
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import paramiko
from rich.console import Console

from deploy_cli.cli import build_parser, run_cli
from deploy_cli.config import AppConfig
from deploy_cli.errors import SSHConnectionError
from deploy_cli.interaction import AutoResponseHandler
from deploy_cli.profiles import ProfileStore
from deploy_cli.reporting import RecordingReporter
from deploy_cli.ssh import RemoteStream
from deploy_cli.workflow import DeploymentWorkflow, LogTail

from fakes import (
    FakeGit,
    FakeLocalRunner,
    FakeLogChannel,
    FakeRemoteSession,
    FakeSSHClient,
    FakeStore,
    make_profile,
    ssh_session,
)


class ParserTests(unittest.TestCase):
    def test_deploy_flags(self) -> None:
        args = build_parser().parse_args(["-vv", "deploy", "-e", "production", "-b", "release", "-f", "-d"])
        self.assertEqual(args.verbose, 2)
        self.assertEqual((args.env, args.branch, args.force, args.dry_run), ("production", "release", True, True))

    def test_logs_defaults(self) -> None:
        args = build_parser().parse_args(["logs", "--follow"])
        self.assertEqual(args.lines, 50)
        self.assertTrue(args.follow)

    def test_config_actions_are_exclusive(self) -> None:
        with self.assertRaises(SystemExit):
            build_parser().parse_args(["config", "--list", "--init"])


class RunCliTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        patcher = mock.patch.dict(os.environ, {"DEPLOY_CLI_HOME": self._tmp.name})
        patcher.start()
        self.addCleanup(patcher.stop)

        self.output = io.StringIO()
        self.console = Console(file=self.output, force_terminal=False, width=120)
        self.session = FakeRemoteSession()
        self.prompter = AutoResponseHandler()
        self.store = FakeStore()

    def _workflow(self, config: AppConfig, console: Console) -> DeploymentWorkflow:
        config.deployment.simulate_step_delay = 0
        config.deployment.settle_seconds = 0
        workflow = DeploymentWorkflow(
            config=config,
            store=self.store,
            prompter=self.prompter,
            reporter=RecordingReporter(),
            session_factory=lambda profile: self.session,
            git=FakeGit(),
            working_dir="/srv/project",
            port_checker=lambda host, port: True,
            local_runner_factory=FakeLocalRunner(),
        )
        return workflow

    def run_cli(self, *argv: str) -> int:
        return run_cli(list(argv), workflow_factory=self._workflow, console=self.console)

    def test_no_arguments_prints_help(self) -> None:
        with mock.patch("sys.stdout", new_callable=io.StringIO) as stdout:
            self.assertEqual(run_cli([]), 0)
        self.assertIn("deploy-cli", stdout.getvalue())

    def test_dry_run_exits_zero(self) -> None:
        self.assertEqual(self.run_cli("deploy", "--env", "staging", "--dry-run"), 0)
        self.assertEqual(self.session.calls, [])

    def test_successful_deploy(self) -> None:
        self.assertEqual(self.run_cli("deploy", "-e", "staging"), 0)
        self.assertEqual(self.session.disconnect_count, 1)

    def test_verification_warning_still_exits_zero(self) -> None:
        self.session.failures = {"curl": 7}
        self.assertEqual(self.run_cli("deploy", "-e", "staging", "--force"), 0)

    def test_fatal_stage_exits_one_with_stage_name(self) -> None:
        self.session.failures = {"npm install": 1}
        self.assertEqual(self.run_cli("deploy", "-e", "staging", "--force"), 1)
        self.assertIn("Install dependencies and build failed", self.output.getvalue())

    def test_invalid_environment_exits_one(self) -> None:
        self.assertEqual(self.run_cli("deploy", "-e", "prod"), 1)
        self.assertIn("Invalid environment: prod", self.output.getvalue())
        self.assertEqual(self.store.resolve_calls, [])

    def test_dropped_connection_names_the_failing_stage(self) -> None:
        client = FakeSSHClient()
        client.errors = {"mkdir -p /var/backups": paramiko.SSHException("Socket is closed")}
        self.session = ssh_session(client, host="203.0.113.10")

        self.assertEqual(self.run_cli("deploy", "-e", "staging", "--force"), 1)

        text = self.output.getvalue()
        self.assertIn("Back up current version failed: ", text)
        self.assertIn("Socket is closed", text)
        self.assertNotIn("Traceback", text)
        self.assertTrue(client.closed)

    def test_declined_confirmation_exits_one(self) -> None:
        self.prompter = AutoResponseHandler(always_confirm=False)
        self.assertEqual(self.run_cli("deploy"), 1)
        self.assertIn("deployment cancelled", self.output.getvalue())

    def test_logging_format_from_config_is_applied(self) -> None:
        (Path(self._tmp.name) / "config.json").write_text(
            '{"logging": {"level": "INFO", "format": "%(levelname)s %(message)s"}}', encoding="utf-8"
        )
        with mock.patch("deploy_cli.utils.logging._LOGGING_CONFIGURED", False), mock.patch(
            "logging.basicConfig"
        ) as basic_config:
            self.assertEqual(self.run_cli("deploy", "-e", "staging", "--dry-run"), 0)
        basic_config.assert_called_once_with(level="INFO", format="%(levelname)s %(message)s")

    def test_keyboard_interrupt_exits_130(self) -> None:
        with mock.patch.object(DeploymentWorkflow, "deploy", side_effect=KeyboardInterrupt):
            self.assertEqual(self.run_cli("deploy", "-e", "staging"), 130)

    def test_status_prints_host_and_services(self) -> None:
        self.session.outputs = {"hostname": "web-01", "systemctl is-active nginx": "active"}
        self.assertEqual(self.run_cli("status", "-e", "staging"), 0)
        text = self.output.getvalue()
        self.assertIn("web-01", text)
        self.assertIn("nginx", text)
        self.assertIn("https://staging.example.com", text)

    def test_status_error_exits_one(self) -> None:
        self.session.connect_error = SSHConnectionError("refused")
        self.assertEqual(self.run_cli("status"), 1)

    def test_logs_prints_snapshot(self) -> None:
        self.session.existing_files = {"/var/www/app/logs/app.log"}
        self.session.outputs = {"tail -n 10": "[boot] ready"}
        self.assertEqual(self.run_cli("logs", "-n", "10"), 0)
        self.assertIn("[boot] ready", self.output.getvalue())

    def test_logs_follow_restores_interrupt_handler(self) -> None:
        def original(signum, frame) -> None:
            pass

        previous = signal.signal(signal.SIGINT, original)
        self.addCleanup(signal.signal, signal.SIGINT, previous)
        installed = []

        class ObservedTail(LogTail):
            def __iter__(self):
                installed.append(signal.getsignal(signal.SIGINT))
                yield from super().__iter__()

        session = FakeRemoteSession()
        session.connect()
        tail = ObservedTail(session, RemoteStream(FakeLogChannel([b"GET /health 200\n"])), "/var/log/nginx/access.log")

        with mock.patch.object(DeploymentWorkflow, "logs", return_value=tail):
            self.assertEqual(self.run_cli("logs", "--follow"), 0)

        self.assertIn("GET /health 200", self.output.getvalue())
        self.assertIsNot(installed[0], original)
        self.assertIs(signal.getsignal(signal.SIGINT), original)
        self.assertEqual(session.disconnect_count, 1)

        installed[0](signal.SIGINT, None)
        self.assertTrue(tail.stopped)

    def test_quick_declined_exits_zero(self) -> None:
        self.prompter = AutoResponseHandler(responses={"Deploy now": "no"})
        self.assertEqual(self.run_cli("quick"), 0)
        self.assertEqual(self.session.calls, [])

    def test_config_list_reads_store(self) -> None:
        store = ProfileStore(Path(self._tmp.name) / "servers.json")
        store.add(make_profile())
        self.store = store
        self.assertEqual(self.run_cli("config", "--list"), 0)
        self.assertIn("staging-web", self.output.getvalue())

    def test_config_remove_unknown_exits_one(self) -> None:
        store = ProfileStore(Path(self._tmp.name) / "servers.json")
        store.init()
        self.store = store
        self.assertEqual(self.run_cli("config", "--remove", "ghost"), 1)


if __name__ == "__main__":
    unittest.main()
