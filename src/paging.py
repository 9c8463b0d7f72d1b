from __future__ import annotations

import datetime
import decimal
from abc import ABC, abstractmethod
from collections.abc import Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Iterator, List, Optional, Sequence, Tuple

from config import DEFAULT_INSERT_BATCH_SIZE
from report import Report

# Values a struct field may carry unchanged; anything else is rendered as text.
_PRIMITIVES = (str, bytes, bytearray, int, float, decimal.Decimal, datetime.date, datetime.time)


class PagedCursor(ABC):
    """
    Forward-only row iterator that pulls rows from the source in pages of `page_size`.

    Usage mirrors a JDBC result set:
        while paged.next():
            row = paged.current_row()

    With `prefetch=True` a single worker thread fetches the next page while the
    current one is consumed. Only one fetch is ever outstanding, and a fetch
    error is raised from next() at the page boundary where it would have
    happened synchronously.
    """

    def __init__(self, page_size: int = DEFAULT_INSERT_BATCH_SIZE, prefetch: bool = False) -> None:
        self.page_size = DEFAULT_INSERT_BATCH_SIZE
        self._page: List[Any] = []
        self._index = 0
        self._row: Optional[Tuple[Any, ...]] = None
        self._exhausted = False
        self.set_page_size(page_size)
        self._executor: Optional[ThreadPoolExecutor] = (
            ThreadPoolExecutor(max_workers=1, thread_name_prefix="prefetch") if prefetch else None
        )
        self._pending: Optional[Future] = None

    # Public APIs

    def set_page_size(self, rows: int) -> None:
        if rows < 1:
            raise ValueError(f"page size must be at least 1 (got {rows})")
        self.page_size = rows

    def next(self) -> bool:
        """ Advance to the next row. Returns False once the source is exhausted. """
        if self._exhausted:
            return False
        if self._index >= len(self._page):
            self._page = list(self._next_page())
            self._index = 0
            if not self._page:
                return self._finish()
        raw = self._page[self._index]
        self._index += 1
        row = self._decode(raw)
        if row is None:
            return self._finish()
        self._row = row
        return True

    def current_row(self) -> Tuple[Any, ...]:
        if self._row is None:
            raise RuntimeError("current_row() called before next() returned True")
        return self._row

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True, cancel_futures=True)
            self._executor = None
            self._pending = None

    def __iter__(self) -> Iterator[Tuple[Any, ...]]:
        while self.next():
            yield self._row

    def __enter__(self) -> "PagedCursor":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # Driver hooks

    @abstractmethod
    def _fetch_page(self, size: int) -> Sequence[Any]:
        """ One round trip to the source returning up to `size` raw rows. """

    def _decode(self, raw: Any) -> Optional[Tuple[Any, ...]]:
        return tuple(raw)

    # Helpers

    def _finish(self) -> bool:
        self._exhausted = True
        self._row = None
        self._page = []
        return False

    def _next_page(self) -> Sequence[Any]:
        if self._executor is None:
            return self._fetch_page(self.page_size)
        future = self._pending or self._executor.submit(self._fetch_page, self.page_size)
        self._pending = None
        page = future.result()
        if page:
            self._pending = self._executor.submit(self._fetch_page, self.page_size)
        return page


class NativePagedCursor(PagedCursor):
    """ DB-API cursor that pages natively through arraysize/fetchmany().

    With `use_arraysize=False` the page size is only passed to fetchmany(),
    for drivers that reject `arraysize`.
    """

    def __init__(
        self,
        cursor: Any,
        page_size: int = DEFAULT_INSERT_BATCH_SIZE,
        prefetch: bool = False,
        use_arraysize: bool = True,
    ) -> None:
        self.cursor = cursor
        self.use_arraysize = use_arraysize
        super().__init__(page_size, prefetch)

    def set_page_size(self, rows: int) -> None:
        super().set_page_size(rows)
        if self.use_arraysize:
            self.cursor.arraysize = rows

    def _fetch_page(self, size: int) -> Sequence[Any]:
        return self.cursor.fetchmany(size)


class ListRowCodec:
    """ Deserialized rows are plain ordered lists of values. """
    name = "list"

    def decode(self, obj: Any) -> Tuple[Any, ...]:
        return tuple(obj)


class StructRowCodec:
    """ Deserialized rows are structs whose values are looked up by field name. """
    name = "struct"

    def __init__(self, fields: Sequence[str]) -> None:
        self.fields = list(fields)

    def decode(self, obj: Any) -> Tuple[Any, ...]:
        values = []
        for f in self.fields:
            v = obj[f] if isinstance(obj, Mapping) else getattr(obj, f)
            if v is not None and not isinstance(v, _PRIMITIVES):
                v = str(v)
            values.append(v)
        return tuple(values)


class FetchNPagedCursor(PagedCursor):
    """
    Wrapper around a legacy source cursor that can only hand out serialized rows
    through a `fetch_n(n)` primitive, which it must pair with `deserialize(payload)`.

    The wire encoding is fixed when the cursor is built: drivers that declare
    `struct_fields` produce named-field structs, all others plain lists.
    An empty page or an empty payload marks the end of the data.

    Raises:
        ValueError: the driver lacks `fetch_n` or `deserialize`.
    """

    def __init__(self, cursor: Any, page_size: int = DEFAULT_INSERT_BATCH_SIZE, prefetch: bool = False) -> None:
        if not callable(getattr(cursor, "fetch_n", None)) or not callable(getattr(cursor, "deserialize", None)):
            raise ValueError("Unable to apply fetch_n paging: cursor needs fetch_n() and deserialize()")
        fields = getattr(cursor, "struct_fields", None)
        self.codec = StructRowCodec(fields) if fields is not None else ListRowCodec()
        self.cursor = cursor
        super().__init__(page_size, prefetch)

    def _fetch_page(self, size: int) -> Sequence[Any]:
        return self.cursor.fetch_n(size) or []

    def _decode(self, raw: Any) -> Optional[Tuple[Any, ...]]:
        if raw in ("", b""):
            return None
        return self.codec.decode(self.cursor.deserialize(raw))


def open_paged_cursor(
    cursor: Any,
    page_size: int = DEFAULT_INSERT_BATCH_SIZE,
    prefetch: bool = False,
    report: Optional[Report] = None,
) -> PagedCursor:
    """
    Pick the paging strategy for an executed source cursor.

    Cursors that page natively (fetchmany() plus a settable `arraysize`) are
    passed through. Only when that fails is the cursor wrapped for fetch_n
    paging; if that fails too, fetchmany() is used without `arraysize`.
    Callers must not depend on which one they get.

    Raises:
        ValueError: the cursor supports neither fetchmany() nor fetch_n().
    """
    report = report or Report()
    native = callable(getattr(cursor, "fetchmany", None))
    if native:
        try:
            return NativePagedCursor(cursor, page_size, prefetch)
        except (AttributeError, TypeError) as e:
            report.info(f"Source cursor does not accept arraysize ({e}). Wrapping it for fetch_n paging.")
    try:
        paged = FetchNPagedCursor(cursor, page_size, prefetch)
    except ValueError as e:
        if not native:
            raise
        report.warn(
            "Wrapping the source cursor for fetch_n paging failed. "
            f"Performance may be poor for large result sets. ({e})")
        return NativePagedCursor(cursor, page_size, prefetch, use_arraysize=False)
    report.info(f"Buffering pages of {page_size} rows through fetch_n ({paged.codec.name} encoding).")
    return paged
