import io
import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from fakes import FakeBackend, ace

from ServiceSentry.cli import main

ALPHA_DIR = r"C:\Apps\Alpha"
ALPHA_EXE = r"C:\Apps\Alpha\alpha.exe"


def make_backend(**overrides):
    backend = FakeBackend(services=[("alpha", "Alpha", ALPHA_EXE)], **overrides)
    backend.add_acl(ALPHA_DIR, ace("Everyone", "FullControl", inherited=True), ace("BUILTIN\\Administrators", "FullControl"))
    backend.add_acl(ALPHA_EXE, ace("BUILTIN\\Administrators", "FullControl"))
    return backend


class TestCli(unittest.TestCase):
    def test_refuses_to_run_without_elevation(self) -> None:
        backend = make_backend(elevated=False)
        self.assertEqual(main(["--quiet"], backend=backend), 2)
        self.assertEqual(sum(backend.reads.values()), 0)

    def test_writes_json_report(self) -> None:
        backend = make_backend()
        with tempfile.TemporaryDirectory() as tmpdir:
            output = Path(tmpdir) / "reports" / "sentry.json"
            code = main(["--quiet", "--output", str(output), "--format", "json"], backend=backend)
            report = json.loads(output.read_text(encoding="utf-8"))

        self.assertEqual(code, 0)
        self.assertEqual(report["mode"], "remediate")
        self.assertEqual(report["secured_services"], ["Alpha"])
        self.assertEqual(report["paths"][0]["state"], "remediated")
        self.assertTrue(report["paths"][0]["inheritance_converted"])
        self.assertEqual(report["paths"][1]["state"], "clean")

    def test_json_report_carries_the_run_log(self) -> None:
        backend = make_backend()
        with tempfile.TemporaryDirectory() as tmpdir:
            output = Path(tmpdir) / "sentry.json"
            main(["--quiet", "--output", str(output), "--format", "json"], backend=backend)
            report = json.loads(output.read_text(encoding="utf-8"))

        self.assertIn({"tag": "warning", "text": f"Everyone has FullControl on {ALPHA_DIR}"}, report["log"])
        self.assertIn({"tag": "success", "text": f"Removed FullControl for Everyone on {ALPHA_DIR}"}, report["log"])
        self.assertEqual(report["log"][-1], {"tag": "heading", "text": "Alpha"})

    def test_writes_text_report(self) -> None:
        backend = make_backend()
        with tempfile.TemporaryDirectory() as tmpdir:
            output = Path(tmpdir) / "sentry.txt"
            main(["--quiet", "--output", str(output)], backend=backend)
            text = output.read_text(encoding="utf-8")

        self.assertIn(f"{ALPHA_DIR} [folder, Alpha] -> remediated", text)
        self.assertIn("[ok] Everyone FullControl (remove_grant)", text)
        self.assertIn("The following services were secured:", text)

    def test_enumeration_failure_returns_error_without_report(self) -> None:
        backend = FakeBackend(services=[])
        with tempfile.TemporaryDirectory() as tmpdir:
            output = Path(tmpdir) / "sentry.json"
            transcript = Path(tmpdir) / "run.log"
            code = main(
                ["--quiet", "--output", str(output), "--transcript", str(transcript)], backend=backend
            )
            self.assertFalse(output.exists())
            log = transcript.read_text(encoding="utf-8")

        self.assertEqual(code, 1)
        self.assertIn("[-] Service list came back empty (item: services)", log)
        self.assertNotIn("All services are already secure", log)

    def test_transcript_records_every_line(self) -> None:
        backend = make_backend()
        with tempfile.TemporaryDirectory() as tmpdir:
            transcript = Path(tmpdir) / "run.log"
            main(["--quiet", "--transcript", str(transcript)], backend=backend)
            log = transcript.read_text(encoding="utf-8")

        self.assertIn("Transcript started", log)
        self.assertIn("[!] Everyone has FullControl on C:\\Apps\\Alpha", log)
        self.assertIn("[+] Removed FullControl for Everyone on C:\\Apps\\Alpha", log)
        self.assertIn("Transcript stopped", log)

    def test_audit_only_from_config(self) -> None:
        backend = make_backend()
        with tempfile.TemporaryDirectory() as tmpdir:
            config = Path(tmpdir) / "sentry.json"
            config.write_text(json.dumps({"audit_only": True}), encoding="utf-8")
            output = Path(tmpdir) / "report.json"
            code = main(["--quiet", "--config", str(config), "--output", str(output), "--format", "json"], backend=backend)
            report = json.loads(output.read_text(encoding="utf-8"))

        self.assertEqual(code, 0)
        self.assertEqual(report["mode"], "audit")
        self.assertEqual(report["summary"][0], "The following services would be secured:")
        self.assertEqual(backend.applied, [])

    def test_prints_summary_to_console(self) -> None:
        backend = make_backend()
        backend.add_acl(ALPHA_DIR, ace("BUILTIN\\Administrators", "FullControl"))
        with mock.patch("sys.stdout", new_callable=io.StringIO) as stdout:
            code = main(["--no-color"], backend=backend)

        self.assertEqual(code, 0)
        output = stdout.getvalue()
        self.assertIn("finds and fixes broad write access", output)
        self.assertIn("[+] All services are already secure.", output)

    def test_missing_config_is_a_usage_error(self) -> None:
        with mock.patch("sys.stderr", new_callable=io.StringIO):
            with self.assertRaises(SystemExit):
                main(["--config", "/nonexistent/sentry.json"], backend=make_backend())


if __name__ == "__main__":
    unittest.main()
