import logging
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple
from .errors import MalformedRecord
from .models import (
    Book, BookKey, DroppedRecord, MergedHistory, MergeResult, RawVisit, SourceSnapshot, VisitConflict,
)
from .rescale import check_page
from .state import StateManager

logger = logging.getLogger(__name__)

VisitSlot = Tuple[int, int]  # (page, start_time)

class SyncMerger:
    def __init__(self, state_manager: StateManager):
        self.sm = state_manager

    def merge(self, snapshots: Sequence[SourceSnapshot], unavailable: Iterable[str] = ()) -> MergeResult:
        """
        Fold source snapshots into one MergedHistory per book.
        `unavailable` lists source ids that could not be read this run; their cached
        book sets are left alone and their books are never reported deleted.
        """
        result = MergeResult()
        unavailable = sorted(set(unavailable))
        for source_id in unavailable:
            result.warnings.append(f"Source {source_id} unavailable, skipped for this run")
            self.sm.record_failure(source_id, "unavailable")

        books: Dict[BookKey, Book] = {}
        visits: Dict[BookKey, Dict[VisitSlot, Tuple[RawVisit, str]]] = {}
        sources: Dict[BookKey, Set[str]] = {}
        read_ok: List[str] = []

        for snap in snapshots:
            if snap.source_id not in read_ok:
                read_ok.append(snap.source_id)
            result.warnings.extend(snap.warnings)
            result.dropped.extend(snap.dropped)
            for history in snap.histories:
                key = history.key
                books[key] = self._merge_book(books.get(key), history.book)
                sources.setdefault(key, set()).add(snap.source_id)
                slots = visits.setdefault(key, {})
                for visit in history.visits:
                    self._merge_visit(key, slots, visit, snap.source_id, result)

        for key in sorted(books, key=lambda k: (k.title, k.authors, k.md5)):
            ordered = sorted((v for v, _ in visits[key].values()), key=lambda v: (v.start_time, v.page))
            result.histories.append(MergedHistory(book=books[key], visits=ordered, sources=sorted(sources[key])))

        self._detect_deletions(set(books), read_ok, result)

        for snap in snapshots:
            self.sm.record_read(snap.source_id, snap.book_keys)

        result.sources_read = read_ok
        result.sources_unavailable = unavailable
        logger.info(
            f"Merged {len(result.histories)} books from {len(read_ok)} sources "
            f"({len(result.conflicts)} conflicts, {len(result.deleted)} deleted, {len(unavailable)} unavailable)"
        )
        return result

    def _merge_book(self, existing: Optional[Book], incoming: Book) -> Book:
        if existing is None:
            return incoming.model_copy()

        # Current page count follows whichever device opened the book last
        newer = incoming if (incoming.last_open or 0) > (existing.last_open or 0) else existing
        last_open_values = [v for v in (existing.last_open, incoming.last_open) if v is not None]
        return Book(
            key=existing.key,
            pages=newer.pages if newer.pages else (existing.pages or incoming.pages),
            last_open=max(last_open_values) if last_open_values else None,
            highlights=max(existing.highlights, incoming.highlights),
            notes=max(existing.notes, incoming.notes),
            series=existing.series or incoming.series,
            language=existing.language or incoming.language,
        )

    def _merge_visit(self, key: BookKey, slots: Dict[VisitSlot, Tuple[RawVisit, str]],
                     visit: RawVisit, source_id: str, result: MergeResult):
        try:
            check_page(visit.page, visit.total_pages)
        except MalformedRecord as e:
            msg = f"Dropped visit for {key.label()} page={visit.page} start_time={visit.start_time} from {source_id}: {e}"
            logger.warning(msg)
            result.warnings.append(msg)
            result.dropped.append(DroppedRecord(
                source_id=source_id, book=key, page=visit.page, start_time=visit.start_time, reason=str(e),
            ))
            return

        slot = visit.key
        current = slots.get(slot)
        if current is None:
            slots[slot] = (visit, source_id)
            return

        held, held_source = current
        if held.duration == visit.duration:
            return

        # Longest recording wins; a shorter one is usually a truncated session
        if visit.duration > held.duration:
            kept, kept_source, lost, lost_source = visit, source_id, held, held_source
            slots[slot] = (visit, source_id)
        else:
            kept, kept_source, lost, lost_source = held, held_source, visit, source_id

        logger.debug(
            f"Conflict for {key.label()} page {visit.page} at {visit.start_time}: "
            f"kept {kept.duration}s from {kept_source}, discarded {lost.duration}s from {lost_source}"
        )
        result.conflicts.append(VisitConflict(
            book=key,
            page=visit.page,
            start_time=visit.start_time,
            kept_duration=kept.duration,
            discarded_duration=lost.duration,
            kept_source=kept_source,
            discarded_source=lost_source,
        ))

    def _detect_deletions(self, present: Set[BookKey], read_ok: List[str], result: MergeResult):
        previously_held: Dict[BookKey, Set[str]] = {}
        for source_id, status in self.sm.state.sources.items():
            for key in status.books:
                previously_held.setdefault(key, set()).add(source_id)

        deleted = []
        for key, holders in previously_held.items():
            if key in present:
                continue
            missing_reads = holders - set(read_ok)
            if missing_reads:
                result.pending.append(key)
                result.warnings.append(
                    f"{key.label()} missing from current sources but {', '.join(sorted(missing_reads))} "
                    f"was not read, not treating as deleted"
                )
            else:
                deleted.append(key)
                logger.info(f"Book deleted from all sources: {key.label()}")

        sort_key = lambda k: (k.title, k.authors, k.md5)
        result.deleted = sorted(deleted, key=sort_key)
        result.pending.sort(key=sort_key)

        self.sm.mark_deleted(deleted)
        # books that came back are no longer deleted
        self.sm.state.deleted = [k for k in self.sm.state.deleted if k not in present]
