import os
from typing import Any, Iterable

import xmltodict

from models import SNAPSHOT_FIELDS, ServiceSnapshot

CSV_FILE_NAME = "windowsNetworkServices.csv"
XML_FILE_NAME = "serviceMap.xml"
XML_ROOT = "ArrayOfServiceSnapshot"
XML_ITEM = "ServiceSnapshot"


def field_value(snapshot: ServiceSnapshot, attribute: str) -> str:
    value = getattr(snapshot, attribute)
    return "" if value is None else str(value)


def header_row(delimiter: str = ",") -> str:
    return delimiter.join(header for header, _ in SNAPSHOT_FIELDS)


def text_row(snapshot: ServiceSnapshot, delimiter: str = ",") -> str:
    # Values are written as-is; sc never reports names containing the delimiter.
    return delimiter.join(field_value(snapshot, attribute) for _, attribute in SNAPSHOT_FIELDS)


def to_delimited_lines(snapshots: Iterable[ServiceSnapshot], delimiter: str = ",") -> list[str]:
    """Header row followed by one row per snapshot, in the given order."""
    lines = [header_row(delimiter)]
    lines.extend(text_row(snapshot, delimiter) for snapshot in snapshots)
    return lines


def store_map(snapshots: Iterable[ServiceSnapshot], out_dir: str | None = None, delimiter: str = ",") -> str:
    """Write the snapshots as delimited text. Returns the file path."""
    path = os.path.join(out_dir or os.getcwd(), CSV_FILE_NAME)
    with open(path, "w", encoding="utf-8") as f:
        for line in to_delimited_lines(snapshots, delimiter):
            f.write(line + "\n")
    return path


def convert_snapshots_to_document(snapshots: Iterable[ServiceSnapshot]) -> dict[str, Any]:
    """
    Build the xmltodict document for a snapshot array: one element per snapshot,
    one child element per field, in column order.
    """
    items = [{header: field_value(snapshot, attribute) for header, attribute in SNAPSHOT_FIELDS} for snapshot in snapshots]
    return {XML_ROOT: {XML_ITEM: items} if items else None}


def persist_service_map(snapshots: Iterable[ServiceSnapshot], out_dir: str | None = None) -> str:
    """Write the snapshots as an XML document. Returns the file path."""
    path = os.path.join(out_dir or os.getcwd(), XML_FILE_NAME)
    document = convert_snapshots_to_document(snapshots)
    with open(path, "w", encoding="utf-8") as f:
        xmltodict.unparse(document, output=f, encoding="utf-8", pretty=True)
    return path
