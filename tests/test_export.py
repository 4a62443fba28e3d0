from __future__ import annotations

import os
import tempfile
import unittest

import xmltodict

import export
from models import ServiceSnapshot

HEADER = "ServiceName,MachineName,DisplayName,IPAddress,Type,State,StartMode,DependentServices"


def snapshot(machine_name: str = "M1", service_name: str = "svcA", **kwargs) -> ServiceSnapshot:
    values = {
        "display_name": "Service A",
        "ip_address": "10.0.0.1",
        "service_type": "WIN32_OWN_PROCESS",
        "state": "RUNNING",
        "dependent_services": "Dep One|Dep Two",
    }
    values.update(kwargs)
    return ServiceSnapshot(service_name=service_name, machine_name=machine_name, **values)


class DelimitedTextTests(unittest.TestCase):
    def test_header_follows_declared_field_order(self) -> None:
        self.assertEqual(HEADER, export.header_row())

    def test_row_values_follow_header_order(self) -> None:
        lines = export.to_delimited_lines([snapshot()])
        self.assertEqual(HEADER, lines[0])
        self.assertEqual("svcA,M1,Service A,10.0.0.1,WIN32_OWN_PROCESS,RUNNING,,Dep One|Dep Two", lines[1])

    def test_unresolved_address_is_an_empty_field(self) -> None:
        row = export.text_row(snapshot(ip_address=None))
        self.assertEqual("", row.split(",")[3])

    def test_other_delimiter(self) -> None:
        self.assertEqual(HEADER.replace(",", ";"), export.header_row(";"))


class FileSinkTests(unittest.TestCase):
    def test_csv_file_for_empty_inventory_has_only_header(self) -> None:
        with tempfile.TemporaryDirectory(prefix="svcmap_csv_") as tmp_dir:
            path = export.store_map([], tmp_dir)
            self.assertEqual(export.CSV_FILE_NAME, os.path.basename(path))
            with open(path, encoding="utf-8") as f:
                self.assertEqual([HEADER], f.read().splitlines())

    def test_csv_file_rows(self) -> None:
        with tempfile.TemporaryDirectory(prefix="svcmap_csv_") as tmp_dir:
            path = export.store_map([snapshot("A"), snapshot("B", "svcB")], tmp_dir)
            with open(path, encoding="utf-8") as f:
                lines = f.read().splitlines()
        self.assertEqual(3, len(lines))
        self.assertTrue(lines[2].startswith("svcB,B,"))

    def test_csv_defaults_to_working_directory(self) -> None:
        with tempfile.TemporaryDirectory(prefix="svcmap_cwd_") as tmp_dir:
            previous = os.getcwd()
            os.chdir(tmp_dir)
            try:
                path = export.store_map([])
            finally:
                os.chdir(previous)
            self.assertTrue(os.path.exists(os.path.join(tmp_dir, export.CSV_FILE_NAME)))
            self.assertEqual(os.path.realpath(tmp_dir), os.path.realpath(os.path.dirname(path)))

    def test_xml_file_for_empty_inventory_is_an_empty_collection(self) -> None:
        with tempfile.TemporaryDirectory(prefix="svcmap_xml_") as tmp_dir:
            path = export.persist_service_map([], tmp_dir)
            self.assertEqual(export.XML_FILE_NAME, os.path.basename(path))
            with open(path, encoding="utf-8") as f:
                document = xmltodict.parse(f.read())
        self.assertEqual({export.XML_ROOT: None}, dict(document))

    def test_xml_file_has_one_element_per_field(self) -> None:
        with tempfile.TemporaryDirectory(prefix="svcmap_xml_") as tmp_dir:
            path = export.persist_service_map([snapshot("A"), snapshot("B", "svcB", ip_address=None)], tmp_dir)
            with open(path, encoding="utf-8") as f:
                document = xmltodict.parse(f.read())
        items = document[export.XML_ROOT][export.XML_ITEM]
        self.assertEqual(2, len(items))
        self.assertEqual(
            ["ServiceName", "MachineName", "DisplayName", "IPAddress", "Type", "State", "StartMode", "DependentServices"],
            list(items[0].keys()),
        )
        self.assertEqual("svcA", items[0]["ServiceName"])
        self.assertEqual("Dep One|Dep Two", items[0]["DependentServices"])
        self.assertIsNone(items[1]["IPAddress"])


if __name__ == "__main__":
    unittest.main()
