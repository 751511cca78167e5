"""Comma-separated text parser producing typed rows."""

import re
from typing import List, Sequence

from refinery.connectors.base import MalformedInputError, ParsedTable, TabularConnector
from refinery.utils.cells import Row, coerce_field

_LINE_SPLIT = re.compile(r"\r?\n")
_ENCODINGS = ("utf-8-sig", "cp1252")


def split_line(line: str, delimiter: str = ",") -> List[str]:
    # Every quote toggles quoted mode and is dropped; "" is not unescaped to a literal quote.
    fields: List[str] = []
    current: List[str] = []
    in_quotes = False
    for ch in line:
        if ch == '"':
            in_quotes = not in_quotes
        elif ch == delimiter and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
    fields.append("".join(current).strip())
    return fields


def _unique_headers(raw_headers: Sequence[str]) -> List[str]:
    seen = set()
    headers: List[str] = []
    for name in raw_headers:
        if name in seen:
            continue
        seen.add(name)
        headers.append(name)
    return headers


def parse_csv_text(text: str, delimiter: str = ",") -> ParsedTable:
    lines = [line for line in _LINE_SPLIT.split(text or "") if line.strip()]
    if not lines:
        raise MalformedInputError("Input has no non-blank lines; cannot derive headers.")

    raw_headers = split_line(lines[0], delimiter)
    headers = _unique_headers(raw_headers)

    rows: List[Row] = []
    for line in lines[1:]:
        values = split_line(line, delimiter)
        row: Row = {}
        # Duplicate header names keep their first position; the right-most value wins.
        for index, name in enumerate(raw_headers):
            raw = values[index] if index < len(values) else None
            row[name] = coerce_field(raw)
        rows.append({name: row[name] for name in headers})
    return ParsedTable(headers=headers, rows=rows)


def decode_bytes(payload: bytes) -> str:
    for enc in _ENCODINGS:
        try:
            return payload.decode(enc)
        except UnicodeDecodeError:
            continue
    # latin-1 maps every byte, so it is the last resort.
    return payload.decode("latin-1")


class CsvConnector(TabularConnector):
    source_type = "csv"

    def __init__(self, delimiter: str = ","):
        self.delimiter = delimiter

    def parse_text(self, text: str) -> ParsedTable:
        return parse_csv_text(text, delimiter=self.delimiter)

    def read_file(self, path: str) -> ParsedTable:
        with open(path, "rb") as f:
            payload = f.read()
        return self.parse_text(decode_bytes(payload))


def read_csv_file(path: str) -> ParsedTable:
    return CsvConnector().read_file(path)
