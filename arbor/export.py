"""Export sinks for root-level records.

Every completed root job ends up here as ``sink.write(url, record)``. The
JSON and XML sinks keep the export file as one document mapping start URL
to record and rewrite it in full on every write; the CSV sink appends one
``url,record-as-json`` row per write.

A full rewrite per record is only safe because a run has exactly one root
aggregator calling ``write``. There is no file locking.

Example::

    sink = create_export_sink("json", "output.json")
    sink.reset()
    sink.write("https://example.com/", {"title": "Example"})
"""

from __future__ import annotations

import csv
import json
import logging
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from lxml import etree

from arbor.common.exceptions import (
    ExportSinkError,
    UnsupportedExportFormatError,
)

logger = logging.getLogger(__name__)

SUPPORTED_EXPORT_FORMATS = ["json", "xml", "csv"]

# Characters XML 1.0 can't carry, even escaped
_XML_INVALID_CHARS = re.compile(
    r"[^\x09\x0a\x0d\x20-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]"
)


class ExportSink(ABC):
    """Destination for completed root-level records."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def reset(self) -> None:
        """Truncate the export file to empty. Called once at run start."""
        try:
            self.path.write_bytes(b"")
        except OSError as e:
            raise ExportSinkError(
                f"Could not truncate export file: {e}", str(self.path)
            ) from e

    @abstractmethod
    def write(self, key: str, record: dict[str, Any]) -> None:
        """Persist one record under ``key``.

        Raises:
            ExportSinkError: If the file can't be read, decoded or written.
        """

    def _replace(self, payload: bytes) -> None:
        # Write beside the target, then swap it in
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            tmp_path.write_bytes(payload)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise ExportSinkError(
                f"Could not write export file: {e}", str(self.path)
            ) from e

    def _read_bytes(self) -> bytes:
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            return b""
        except OSError as e:
            raise ExportSinkError(
                f"Could not read export file: {e}", str(self.path)
            ) from e


class JsonExportSink(ExportSink):
    """Keeps the export file as one pretty-printed JSON object."""

    def load(self) -> dict[str, Any]:
        """Current contents of the export file (empty file -> empty dict)."""
        raw = self._read_bytes()
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ExportSinkError(
                f"Export file is not valid JSON: {e}", str(self.path)
            ) from e
        if not isinstance(data, dict):
            raise ExportSinkError(
                "Export file does not contain a JSON object", str(self.path)
            )
        return data

    def write(self, key: str, record: dict[str, Any]) -> None:
        data = self.load()
        data[key] = record
        payload = json.dumps(
            data, indent=1, ensure_ascii=False, sort_keys=True
        )
        self._replace(payload.encode("utf-8"))
        logger.debug(f"Exported {key} ({len(data)} records in {self.path})")


class XmlExportSink(ExportSink):
    """Keeps the export file as one XML document.

    Values are stored as typed elements so the file reads back into the
    same map it was written from::

        <output>
          <entry key="https://example.com/">
            <map>
              <item key="title"><str>Example</str></item>
              <item key="tags"><list><str>a</str><str>b</str></list></item>
            </map>
          </entry>
        </output>
    """

    def load(self) -> dict[str, Any]:
        """Current contents of the export file (empty file -> empty dict)."""
        raw = self._read_bytes()
        if not raw.strip():
            return {}
        try:
            root = etree.fromstring(raw)
        except etree.XMLSyntaxError as e:
            raise ExportSinkError(
                f"Export file is not valid XML: {e}", str(self.path)
            ) from e

        data: dict[str, Any] = {}
        for entry in root.iterchildren("entry"):
            values = list(entry.iterchildren(tag=etree.Element))
            data[entry.get("key", "")] = (
                _decode_value(values[0]) if values else None
            )
        return data

    def write(self, key: str, record: dict[str, Any]) -> None:
        data = self.load()
        data[key] = record

        root = etree.Element("output")
        for entry_key, value in data.items():
            entry = etree.SubElement(root, "entry", key=_xml_safe(entry_key))
            entry.append(_encode_value(value))

        payload = etree.tostring(
            root, pretty_print=True, xml_declaration=True, encoding="utf-8"
        )
        self._replace(payload)
        logger.debug(f"Exported {key} ({len(data)} records in {self.path})")


class CsvExportSink(ExportSink):
    """Appends one ``key, record`` row per write.

    The record column holds the record serialized as JSON; nested values
    are not flattened into columns.
    """

    def write(self, key: str, record: dict[str, Any]) -> None:
        try:
            with self.path.open("a", newline="", encoding="utf-8") as f:
                writer = csv.writer(f)
                writer.writerow(
                    [
                        key,
                        json.dumps(record, ensure_ascii=False, sort_keys=True),
                    ]
                )
        except OSError as e:
            raise ExportSinkError(
                f"Could not append to export file: {e}", str(self.path)
            ) from e
        logger.debug(f"Exported {key} to {self.path}")


_SINKS: dict[str, type[ExportSink]] = {
    "json": JsonExportSink,
    "xml": XmlExportSink,
    "csv": CsvExportSink,
}


def check_export_format(export_format: str) -> str:
    """Normalize an export format name and make sure a sink exists for it.

    Raises:
        UnsupportedExportFormatError: If there is no sink for the format.
    """
    normalized = export_format.strip().lower()
    if normalized not in _SINKS:
        raise UnsupportedExportFormatError(
            export_format, SUPPORTED_EXPORT_FORMATS
        )
    return normalized


def create_export_sink(export_format: str, path: Path | str) -> ExportSink:
    """Build the sink for ``export_format`` writing to ``path``.

    Raises:
        UnsupportedExportFormatError: If there is no sink for the format.
    """
    return _SINKS[check_export_format(export_format)](path)


def _xml_safe(text: str) -> str:
    return _XML_INVALID_CHARS.sub("", text)


def _encode_value(value: Any) -> etree._Element:
    """Encode a JSON-like value as a typed element."""
    if value is None:
        return etree.Element("null")
    if isinstance(value, bool):
        element = etree.Element("bool")
        element.text = "true" if value else "false"
        return element
    if isinstance(value, int):
        element = etree.Element("int")
        element.text = str(value)
        return element
    if isinstance(value, float):
        element = etree.Element("float")
        element.text = repr(value)
        return element
    if isinstance(value, dict):
        element = etree.Element("map")
        for item_key, item_value in value.items():
            item = etree.SubElement(element, "item", key=_xml_safe(str(item_key)))
            item.append(_encode_value(item_value))
        return element
    if isinstance(value, (list, tuple)):
        element = etree.Element("list")
        for item_value in value:
            element.append(_encode_value(item_value))
        return element
    element = etree.Element("str")
    element.text = _xml_safe(str(value))
    return element


def _decode_value(element: etree._Element) -> Any:
    """Inverse of :func:`_encode_value`."""
    tag = element.tag
    text = element.text or ""
    if tag == "null":
        return None
    if tag == "bool":
        return text == "true"
    if tag == "int":
        return int(text)
    if tag == "float":
        return float(text)
    if tag == "map":
        result: dict[str, Any] = {}
        for item in element.iterchildren("item"):
            values = list(item.iterchildren(tag=etree.Element))
            result[item.get("key", "")] = (
                _decode_value(values[0]) if values else None
            )
        return result
    if tag == "list":
        return [
            _decode_value(child)
            for child in element.iterchildren(tag=etree.Element)
        ]
    return text
