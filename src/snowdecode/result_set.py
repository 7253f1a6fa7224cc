from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import pyarrow

from snowdecode.decoder import StructuredValueDecoder
from snowdecode.exc import DataError, Error, InterfaceError
from snowdecode.formatting import SessionFormattingContext
from snowdecode.parse import as_descriptor
from snowdecode.types import Row, ScalarType, TypeDescriptor

logger = logging.getLogger(__name__)

ColumnInfo = Union["ResultColumn", Tuple[str, Any], Mapping[str, Any]]


@dataclass(frozen=True)
class ResultColumn:
    """A named result column and its type descriptor."""

    name: str
    descriptor: TypeDescriptor

    @classmethod
    def from_column_info(cls, info: ColumnInfo) -> "ResultColumn":
        """
        Accept a ResultColumn, a ``(name, declaration)`` pair where the declaration is
        a descriptor or type string, or a row-type metadata dictionary with a ``name``.
        """
        if isinstance(info, ResultColumn):
            return info
        if isinstance(info, Mapping):
            return cls(info["name"], as_descriptor(info))
        name, declaration = info
        return cls(name, as_descriptor(declaration))

    @property
    def description(self) -> Tuple:
        """PEP-249 column description tuple."""
        precision = scale = None
        if isinstance(self.descriptor, ScalarType):
            precision, scale = self.descriptor.precision, self.descriptor.scale
        return (
            self.name,
            self.descriptor.kind.value.lower(),
            None,
            None,
            precision,
            scale,
            self.descriptor.nullable,
        )


class StructuredResultSet:
    """
    Decodes the rows of one statement result.

    Each raw row is a sequence with one raw value per column. Every value is
    decoded with the column descriptor, natively or as a JSON string depending
    on the context's fetch_as_string setting.

    A row is consumed before it is decoded, so the fetch after a failing row
    continues with the following row. When a row fails part way through
    fetchmany or fetchall, the rows decoded before it are returned and the
    error is raised by the next fetch.
    """

    def __init__(
        self,
        columns: Sequence[ColumnInfo],
        rows: Iterable[Sequence[Any]],
        context: Optional[SessionFormattingContext] = None,
        arraysize: int = 10000,
    ):
        """
        Parameters:
            :param columns: One entry per column, see ResultColumn.from_column_info
            :param rows: Raw rows from the result source
            :param context: Session formatting context for the statement
            :param arraysize: Default number of rows returned by fetchmany (PEP-249)
        """
        self.columns = [ResultColumn.from_column_info(c) for c in columns]
        self.context = context or SessionFormattingContext()
        self.decoder = StructuredValueDecoder(self.context)
        self.arraysize = arraysize
        self._raw_rows: List[Sequence[Any]] = list(rows)
        self._next_row_index = 0
        self._pending_error: Optional[Error] = None
        self._row_factory = Row(*[c.name for c in self.columns])

    @classmethod
    def from_arrow_table(
        cls,
        table: "pyarrow.Table",
        columns: Sequence[ColumnInfo],
        context: Optional[SessionFormattingContext] = None,
        arraysize: int = 10000,
    ) -> "StructuredResultSet":
        """
        Build a result set from an Arrow table with one column per entry of columns.

        Struct and list columns arrive as Python dicts and lists, and MAP
        columns as lists of (key, value) pairs. They are decoded exactly like
        their JSON counterparts.
        """
        if table.num_columns != len(columns):
            raise InterfaceError(
                f"Arrow table has {table.num_columns} columns, expected {len(columns)}",
                context={"arrow-columns": table.column_names},
            )
        rows = list(zip(*(column.to_pylist() for column in table.itercolumns())))
        logger.debug("Read %d rows from Arrow table", len(rows))
        return cls(columns, rows, context=context, arraysize=arraysize)

    @property
    def description(self) -> List[Tuple]:
        return [c.description for c in self.columns]

    @property
    def rownumber(self):
        return self._next_row_index

    @property
    def remaining_row_count(self) -> int:
        return len(self._raw_rows) - self._next_row_index

    def __iter__(self):
        while True:
            row = self.fetchone()
            if row is None:
                break
            yield row

    def _convert_row(self, raw_row: Sequence[Any]) -> Row:
        if len(raw_row) != len(self.columns):
            raise DataError(
                f"Row {self._next_row_index - 1} has {len(raw_row)} values, "
                f"expected {len(self.columns)}",
                context={"row": self._next_row_index - 1},
            )
        return self._row_factory(
            *[
                self.decoder.decode_column(column.name, raw, column.descriptor)
                for column, raw in zip(self.columns, raw_row)
            ]
        )

    def _raise_pending_error(self) -> None:
        if self._pending_error is not None:
            error, self._pending_error = self._pending_error, None
            raise error

    def fetchone(self) -> Optional[Row]:
        """
        Fetch the next row of a query result set, returning a single sequence,
        or None when no more data is available.
        """
        self._raise_pending_error()
        if self.remaining_row_count <= 0:
            return None
        raw_row = self._raw_rows[self._next_row_index]
        self._next_row_index += 1
        return self._convert_row(raw_row)

    def fetchmany(self, size: Optional[int] = None) -> List[Row]:
        """
        Fetch the next set of rows of a query result, returning a list of rows.

        An empty sequence is returned when no more rows are available.
        """
        if size is None:
            size = self.arraysize
        if size < 0:
            raise ValueError("size argument for fetchmany is %s but must be >= 0", size)

        self._raise_pending_error()
        rows = []
        while len(rows) < size:
            try:
                row = self.fetchone()
            except Error as e:
                if not rows:
                    raise
                logger.debug(
                    "Row %d failed to decode, returning %d rows decoded before it",
                    self._next_row_index - 1,
                    len(rows),
                )
                self._pending_error = e
                break
            if row is None:
                break
            rows.append(row)
        return rows

    def fetchall(self) -> List[Row]:
        """Fetch all (remaining) rows of a query result, returning them as a list of rows."""
        return self.fetchmany(self.remaining_row_count)

    def close(self) -> None:
        self._raw_rows = []
        self._next_row_index = 0
        self._pending_error = None
