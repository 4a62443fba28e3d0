from __future__ import annotations

import subprocess
import unittest

import scm
from models import RemoteAccessError, ServiceStatus, ServiceTimeoutError
from tests.fakes import ACCESS_DENIED, FakeSc, build_manager, render_service

QUERY_OUTPUT = (
    render_service("AJRouter", ServiceStatus.STOPPED, "AllJoyn Router Service", "WIN32_SHARE_PROCESS")
    + render_service("Spooler", ServiceStatus.RUNNING, "Print Spooler")
    + render_service("W32Time", ServiceStatus.START_PENDING, "Windows Time: NTP client")
)


class ParseScOutputTests(unittest.TestCase):
    def test_one_record_per_service_block(self) -> None:
        records = scm.parse_sc_output(QUERY_OUTPUT)
        self.assertEqual(["AJRouter", "Spooler", "W32Time"], [r["SERVICE_NAME"] for r in records])
        self.assertEqual("Print Spooler", records[1]["DISPLAY_NAME"])
        self.assertEqual("4  RUNNING", records[1]["STATE"])

    def test_display_name_may_contain_colons(self) -> None:
        records = scm.parse_sc_output(QUERY_OUTPUT)
        self.assertEqual("Windows Time: NTP client", records[2]["DISPLAY_NAME"])

    def test_enum_header_and_flag_lines_are_skipped(self) -> None:
        output = "Enum: entriesRead = 1\n\n" + render_service("Fax", ServiceStatus.STOPPED, "Fax")
        records = scm.parse_sc_output(output)
        self.assertEqual(1, len(records))
        self.assertNotIn("Enum", records[0])

    def test_error_text_yields_no_records(self) -> None:
        self.assertEqual([], scm.parse_sc_output(ACCESS_DENIED))

    def test_parse_state_and_type(self) -> None:
        self.assertEqual(ServiceStatus.PAUSED, scm.parse_state("7  PAUSED"))
        self.assertIsNone(scm.parse_state(""))
        self.assertIsNone(scm.parse_state("garbage"))
        self.assertEqual("WIN32_OWN_PROCESS (interactive)", scm.parse_type("110  WIN32_OWN_PROCESS  (interactive)"))
        self.assertEqual("", scm.parse_type(None))


class ScManagerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.sc = FakeSc()
        self.sc.add("HOST1", "Spooler", "Print Spooler", dependents=["Fax"])
        self.sc.add("HOST1", "Fax", "Fax", state=ServiceStatus.STOPPED)
        self.manager = build_manager(self.sc, {"HOST1": "10.0.0.5"})

    def test_list_services_addresses_the_remote_host(self) -> None:
        services = self.manager.list_services("HOST1")
        self.assertEqual(["Spooler", "Fax"], [s.service_name for s in services])
        self.assertEqual(ServiceStatus.STOPPED, services[1].status)
        self.assertEqual("WIN32_OWN_PROCESS", services[0].service_type)
        self.assertEqual("\\\\HOST1", self.sc.calls[0][1])

    def test_list_services_on_denied_host_raises(self) -> None:
        self.sc.fail_host("LOCKED", ACCESS_DENIED)
        with self.assertRaises(RemoteAccessError) as ctx:
            self.manager.list_services("LOCKED")
        self.assertEqual(5, ctx.exception.returncode)
        self.assertIn("Access is denied", str(ctx.exception))
        self.assertIn("LOCKED", str(ctx.exception))

    def test_query_status_of_missing_service_is_none(self) -> None:
        self.assertIsNone(self.manager.query_status("HOST1", "NoSuchService"))

    def test_dependent_services_carry_display_names(self) -> None:
        dependents = self.manager.dependent_services("HOST1", "Spooler")
        self.assertEqual(["Fax"], [d.display_name for d in dependents])

    def test_command_timeout_is_a_remote_access_error(self) -> None:
        def hanging_runner(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs.get("timeout"))

        manager = scm.ScManager(runner=hanging_runner, timeout=0.5)
        with self.assertRaises(RemoteAccessError):
            manager.list_services("SLOWHOST")

    def test_missing_sc_binary_is_a_remote_access_error(self) -> None:
        def missing_runner(cmd, **kwargs):
            raise FileNotFoundError(2, "No such file or directory", "sc")

        with self.assertRaises(RemoteAccessError):
            scm.ScManager(runner=missing_runner).list_services("HOST1")

    def test_timeout_is_passed_to_the_runner(self) -> None:
        seen = {}

        def recording_runner(cmd, **kwargs):
            seen.update(kwargs)
            return subprocess.CompletedProcess(cmd, 0, "", "")

        scm.ScManager(runner=recording_runner, timeout=12).list_services("HOST1")
        self.assertEqual(12, seen["timeout"])

    def test_resolve_address_failure_is_none(self) -> None:
        self.assertEqual("10.0.0.5", self.manager.resolve_address("HOST1"))
        self.assertIsNone(self.manager.resolve_address("UNKNOWN"))

    def test_wait_for_status_times_out(self) -> None:
        self.sc.stuck.add("Fax")
        manager = build_manager(self.sc, wait_timeout=0.05)
        fax = manager.list_services("HOST1")[1]
        fax.start()
        with self.assertRaises(ServiceTimeoutError):
            fax.wait_for_status(ServiceStatus.RUNNING)
        self.assertEqual(ServiceStatus.START_PENDING, fax.status)


if __name__ == "__main__":
    unittest.main()
