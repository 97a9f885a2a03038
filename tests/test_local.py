import tempfile
import unittest

from deploy_cli.local import LocalSession


class LocalSessionTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.session = LocalSession(self._tmp.name)

    def test_runs_in_working_dir(self) -> None:
        result = self.session.run("pwd", stream_output=False)
        self.assertTrue(result.ok)
        self.assertTrue(result.stdout.endswith(self._tmp.name.rsplit("/", 1)[-1]))

    def test_non_zero_exit_is_reported(self) -> None:
        result = self.session.run("echo broken >&2; exit 3", stream_output=False)
        self.assertEqual(result.exit_status, 3)
        self.assertEqual(result.stderr, "broken")
        self.assertFalse(result.ok)

    def test_streaming_collects_output(self) -> None:
        result = self.session.run("echo one; echo two", stream_output=True)
        self.assertEqual(result.stdout, "one\ntwo")

    def test_timeout(self) -> None:
        result = self.session.run("sleep 5", timeout=1, stream_output=False)
        self.assertEqual(result.exit_status, -1)
        self.assertIn("timed out", result.stderr)


if __name__ == "__main__":
    unittest.main()
