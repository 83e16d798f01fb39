import unittest

from fakes import FakeBackend, ace

from ServiceSentry.core.corrector import PermissionCorrector
from ServiceSentry.core.enumerator import ServiceEnumerator, build_records, summarize
from ServiceSentry.core.errors import AclReadError, EnumerationError, RunAbortedError
from ServiceSentry.core.models import PathKind, PathState
from ServiceSentry.core.policy import READ_AND_EXECUTE_MASK, RemediationPolicy
from ServiceSentry.core.reporter import Reporter

ALPHA_DIR = r"C:\Apps\Alpha"
SYSTEM32 = r"C:\Windows\system32"
SVCHOST = r"C:\Windows\system32\svchost.exe"


def make_enumerator(backend, audit_only=False):
    policy = RemediationPolicy(system_paths=[r"C:\Windows\System32\svchost.exe", r"C:\Windows\System32"])
    reporter = Reporter(quiet=True)
    corrector = PermissionCorrector(backend, policy, reporter, audit_only=audit_only)
    return ServiceEnumerator(backend, corrector, reporter)


def admin_only():
    return ace("BUILTIN\\Administrators", "FullControl")


class TestBuildRecords(unittest.TestCase):
    def test_sorted_by_display_name_ignoring_case(self) -> None:
        records = build_records([
            ("zeta", "zeta agent", r"C:\Z\z.exe"),
            ("alpha", "Alpha", r"C:\A\a.exe"),
            ("beta", "beta", r"C:\B\b.exe"),
        ])
        self.assertEqual([r.display_name for r in records], ["Alpha", "beta", "zeta agent"])
        self.assertEqual(records[0].executable_path, r"C:\A\a.exe")
        self.assertEqual(records[0].folder_path, r"C:\A")

    def test_unparseable_command_line(self) -> None:
        record = build_records([("afd", "Ancillary Function Driver", r"\SystemRoot\system32\drivers\afd.sys")])[0]
        self.assertEqual(record.executable_path, "")
        self.assertEqual(record.folder_path, "")


class TestServiceEnumerator(unittest.TestCase):
    def test_shared_folder_is_secured_once(self) -> None:
        backend = FakeBackend(services=[
            ("beta", "Beta", r"C:\Apps\Alpha\beta.exe -service"),
            ("alpha", "Alpha", r'"C:\Apps\Alpha\alpha.exe" --run'),
        ])
        backend.add_acl(ALPHA_DIR, ace("Everyone", "FullControl", inherited=True), admin_only())
        backend.add_acl(r"C:\Apps\Alpha\alpha.exe", admin_only())
        backend.add_acl(r"C:\Apps\Alpha\beta.exe", admin_only())

        result = make_enumerator(backend).run()

        self.assertEqual(
            [(r.path, r.kind, r.service) for r in result.reports],
            [
                (ALPHA_DIR, PathKind.FOLDER, "Alpha"),
                (r"C:\Apps\Alpha\alpha.exe", PathKind.FILE, "Alpha"),
                (r"C:\Apps\Alpha\beta.exe", PathKind.FILE, "Beta"),
            ],
        )
        self.assertEqual(backend.protect_calls, [ALPHA_DIR])
        self.assertEqual(result.secured_services, ["Alpha"])
        self.assertEqual(result.path_owners[ALPHA_DIR], ["Alpha", "Beta"])
        self.assertEqual(identities_of(backend, ALPHA_DIR), ["BUILTIN\\Administrators"])

    def test_svchost_users_grant_is_narrowed(self) -> None:
        backend = FakeBackend(services=[("core", "Core", SVCHOST + " -k netsvcs -p")])
        backend.add_acl(SYSTEM32, admin_only(), ace("BUILTIN\\Users", "ReadAndExecute"))
        backend.add_acl(SVCHOST, admin_only(), ace("BUILTIN\\Users", "Modify"))

        result = make_enumerator(backend).run()

        self.assertEqual([r.state for r in result.reports], [PathState.CLEAN, PathState.REMEDIATED])
        users = [e for e in backend.entries(SVCHOST) if e.identity == "BUILTIN\\Users"]
        self.assertEqual([e.mask for e in users], [READ_AND_EXECUTE_MASK])
        self.assertEqual(result.secured_services, ["Core"])

    def test_all_secure_summary(self) -> None:
        backend = FakeBackend(services=[("alpha", "Alpha", r"C:\Apps\Alpha\alpha.exe")])
        backend.add_acl(ALPHA_DIR, admin_only())
        backend.add_acl(r"C:\Apps\Alpha\alpha.exe", admin_only())

        result = make_enumerator(backend).run()

        self.assertTrue(result.all_secure)
        self.assertEqual(result.secured_services, [])
        self.assertEqual(summarize(result), ["All services are already secure."])

    def test_secured_log_has_no_duplicates(self) -> None:
        backend = FakeBackend(services=[
            ("gamma", "Gamma", r"C:\Apps\Gamma\gamma.exe"),
            ("alpha", "Alpha", r"C:\Apps\Alpha\alpha.exe"),
        ])
        backend.add_acl(ALPHA_DIR, ace("Everyone", "Modify"))
        backend.add_acl(r"C:\Apps\Alpha\alpha.exe", ace("BUILTIN\\Users", "Write"))
        backend.add_acl(r"C:\Apps\Gamma", ace("NT AUTHORITY\\Authenticated Users", "Write"))
        backend.add_acl(r"C:\Apps\Gamma\gamma.exe", admin_only())

        result = make_enumerator(backend).run()

        self.assertEqual(result.secured_services, ["Alpha", "Gamma"])
        self.assertEqual(summarize(result), ["The following services were secured:", "  Alpha", "  Gamma"])

    def test_service_without_executable_is_skipped(self) -> None:
        backend = FakeBackend(services=[("afd", "AFD", r"\SystemRoot\system32\drivers\afd.sys")])

        result = make_enumerator(backend).run()

        self.assertEqual(result.reports, [])
        self.assertEqual(sum(backend.reads.values()), 0)

    def test_empty_service_list_aborts(self) -> None:
        with self.assertRaises(EnumerationError):
            make_enumerator(FakeBackend(services=[])).run()

    def test_listing_failure_aborts(self) -> None:
        backend = FakeBackend(services=OSError("RPC server unavailable"))
        with self.assertRaises(EnumerationError) as caught:
            make_enumerator(backend).run()
        self.assertIn("RPC server unavailable", caught.exception.message)

    def test_acl_read_failure_aborts_the_run(self) -> None:
        backend = FakeBackend(services=[
            ("alpha", "Alpha", r"C:\Apps\Alpha\alpha.exe"),
            ("beta", "Beta", r"C:\Apps\Beta\beta.exe"),
        ])
        backend.add_acl(ALPHA_DIR, admin_only())
        backend.add_acl(r"C:\Apps\Beta", admin_only())
        backend.add_acl(r"C:\Apps\Beta\beta.exe", admin_only())

        with self.assertRaises(AclReadError) as caught:
            make_enumerator(backend).run()
        self.assertEqual(caught.exception.item, r"C:\Apps\Alpha\alpha.exe")
        self.assertEqual(backend.reads[backend.key(r"C:\Apps\Beta")], 0)

    def test_unexpected_error_names_the_service(self) -> None:
        backend = FakeBackend(services=[("alpha", "Alpha", r"C:\Apps\Alpha\alpha.exe")])
        backend.add_acl(ALPHA_DIR, admin_only())
        backend.explode_on.add(backend.key(ALPHA_DIR))

        with self.assertRaises(RunAbortedError) as caught:
            make_enumerator(backend).run()
        self.assertEqual(caught.exception.item, "Alpha")

    def test_audit_only_summary(self) -> None:
        backend = FakeBackend(services=[("alpha", "Alpha", r"C:\Apps\Alpha\alpha.exe")])
        backend.add_acl(ALPHA_DIR, ace("Everyone", "Write"))
        backend.add_acl(r"C:\Apps\Alpha\alpha.exe", admin_only())

        result = make_enumerator(backend, audit_only=True).run()

        self.assertEqual(summarize(result)[0], "The following services would be secured:")
        self.assertEqual(identities_of(backend, ALPHA_DIR), ["Everyone"])


def identities_of(backend, path):
    return [entry.identity for entry in backend.entries(path)]


if __name__ == "__main__":
    unittest.main()
