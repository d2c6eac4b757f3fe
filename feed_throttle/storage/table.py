"""
Flat CSV tables used to persist record collections.

Each collection is stored as a header row of field names followed by one
row per record. Values are always strings here; typing and defaulting
are left to the per-collection codecs.
"""

import csv
import io
import logging
from collections.abc import Iterable, Sequence

from feed_throttle.errors import CodecError

logger = logging.getLogger(__name__)

CSV_DELIMITER = ","
CSV_NEWLINE = "\n"


def encode_table(fields: Sequence[str], rows: Iterable[Sequence[object]]) -> str:
    """
    Encode rows as CSV with a header row.

    An empty collection encodes to an empty string (no header), which
    decodes back to an empty collection.
    """
    rows = list(rows)
    if not rows:
        return ""

    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=CSV_DELIMITER, lineterminator=CSV_NEWLINE)
    writer.writerow(fields)
    writer.writerows(rows)
    return buffer.getvalue().rstrip(CSV_NEWLINE)


def decode_table(data: str | None, fields: Sequence[str]) -> list[dict[str, str]]:
    """
    Decode CSV text into one dict per row, keyed by the expected fields.

    A field absent from the header reads as an empty string in every row,
    so tables written before a column was added still decode.

    Raises:
        CodecError: If a row has the wrong number of values or the text is
            not valid CSV. Nothing is returned for a table that fails on
            any row.
    """
    if not data:
        return []

    reader = csv.reader(
        io.StringIO(data), delimiter=CSV_DELIMITER, strict=True
    )
    try:
        table = [row for row in reader if row]
    except csv.Error as e:
        raise CodecError(f"Malformed CSV: {e}", row=reader.line_num) from e

    if not table:
        return []

    header = [name.strip() for name in table[0]]
    missing = [name for name in fields if name not in header]
    if missing:
        logger.debug("Table header lacks column(s): %s", ", ".join(missing))

    records = []
    for row_number, row in enumerate(table[1:], start=2):
        if len(row) != len(header):
            raise CodecError(
                f"Expected {len(header)} fields but found {len(row)}",
                row=row_number,
            )
        values = dict(zip(header, row))
        records.append({name: values.get(name, "") for name in fields})
    return records
