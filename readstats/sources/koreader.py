import asyncio
import logging
import shutil
import sqlite3
import tempfile
from contextlib import closing
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple
from ..errors import SourceUnavailable
from ..models import Book, BookKey, DroppedRecord, MergedHistory, RawVisit, SourceSnapshot

logger = logging.getLogger(__name__)

BOOK_QUERY = (
    "SELECT id, title, authors, notes, last_open, highlights, pages, series, language, md5 FROM book"
)
PAGE_STAT_QUERY = "SELECT id_book, page, start_time, duration, total_pages FROM page_stat_data"

class StatisticsSource:
    """One KOReader statistics.sqlite3 database, typically one per device."""

    def __init__(self, path: str, source_id: Optional[str] = None, timeout: float = 30):
        self.path = Path(path).expanduser()
        self.source_id = source_id or str(self.path)
        self.timeout = timeout

    def read(self) -> SourceSnapshot:
        if not self.path.is_file():
            raise SourceUnavailable(self.source_id, f"no statistics database at {self.path}")

        logger.info(f"Opening statistics database: {self.path}")
        # Work on a copy so a device still writing to the live file is never locked by us
        with tempfile.TemporaryDirectory(prefix="readstats-") as tmp:
            copy_path = Path(tmp) / "statistics.sqlite3"
            try:
                shutil.copyfile(self.path, copy_path)
            except OSError as e:
                raise SourceUnavailable(self.source_id, f"failed to copy database: {e}") from e

            try:
                with closing(sqlite3.connect(f"file:{copy_path}?mode=ro", uri=True, timeout=self.timeout)) as conn:
                    return self._read_connection(conn)
            except sqlite3.Error as e:
                raise SourceUnavailable(self.source_id, f"unreadable database: {e}") from e

    def _read_connection(self, conn: sqlite3.Connection) -> SourceSnapshot:
        snapshot = SourceSnapshot(source_id=self.source_id)
        books: Dict[int, MergedHistory] = {}

        for row in conn.execute(BOOK_QUERY):
            book_id, title, authors, notes, last_open, highlights, pages, series, language, md5 = row
            if not md5 or title is None:
                self._warn(snapshot, f"Skipping book row {book_id} without title/md5")
                continue
            books[book_id] = MergedHistory(
                book=Book(
                    key=BookKey(title=title, authors=authors, md5=md5),
                    pages=pages,
                    last_open=last_open,
                    highlights=highlights or 0,
                    notes=notes or 0,
                    series=series,
                    language=language,
                ),
                sources=[self.source_id],
            )

        seen = set()
        for id_book, page, start_time, duration, total_pages in conn.execute(PAGE_STAT_QUERY):
            history = books.get(id_book)
            if history is None:
                self._drop(snapshot, None, page, start_time, f"unknown book id {id_book}")
                continue
            if page is None or start_time is None or duration is None or duration < 0:
                self._drop(snapshot, history.key, page, start_time, f"corrupt page stat (duration={duration})")
                continue
            if (id_book, page, start_time) in seen:
                continue
            seen.add((id_book, page, start_time))
            # page and total_pages ranges are checked by the merger
            history.visits.append(RawVisit(
                page=page, start_time=start_time, duration=duration, total_pages=total_pages or 0,
            ))

        snapshot.histories = list(books.values())
        logger.info(
            f"Found {len(snapshot.histories)} books and {len(seen)} page stats in {self.source_id}"
        )
        return snapshot

    def _warn(self, snapshot: SourceSnapshot, msg: str):
        logger.warning(f"[{self.source_id}] {msg}")
        snapshot.warnings.append(f"[{self.source_id}] {msg}")

    def _drop(self, snapshot: SourceSnapshot, key: Optional[BookKey], page, start_time, reason: str):
        book = key.label() if key else "unknown book"
        self._warn(snapshot, f"Skipping page stat for {book} page={page} start_time={start_time}: {reason}")
        snapshot.dropped.append(DroppedRecord(
            source_id=self.source_id, book=key, page=page, start_time=start_time, reason=reason,
        ))

async def read_sources(sources: Sequence[StatisticsSource]) -> Tuple[List[SourceSnapshot], Dict[str, str]]:
    """
    Read all sources concurrently. Returns the snapshots that could be read and a map of
    source_id -> failure reason for those that could not.
    """
    async def _read(source: StatisticsSource) -> SourceSnapshot:
        try:
            return await asyncio.wait_for(asyncio.to_thread(source.read), timeout=source.timeout)
        except asyncio.TimeoutError as e:
            raise SourceUnavailable(source.source_id, f"timed out after {source.timeout}s") from e

    results = await asyncio.gather(*[_read(s) for s in sources], return_exceptions=True)

    snapshots: List[SourceSnapshot] = []
    failures: Dict[str, str] = {}
    for source, res in zip(sources, results):
        if isinstance(res, SourceUnavailable):
            logger.warning(f"Source unavailable: {res}")
            failures[source.source_id] = res.reason
        elif isinstance(res, Exception):
            logger.error(f"Failed to read source {source.source_id}: {res}", exc_info=res)
            failures[source.source_id] = str(res)
        else:
            snapshots.append(res)
    return snapshots, failures
