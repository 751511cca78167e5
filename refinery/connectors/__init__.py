from refinery.connectors.base import MalformedInputError, ParsedTable, TabularConnector
from refinery.connectors.csv_connector import CsvConnector, parse_csv_text, read_csv_file

__all__ = [
    "MalformedInputError",
    "ParsedTable",
    "TabularConnector",
    "CsvConnector",
    "parse_csv_text",
    "read_csv_file",
]
