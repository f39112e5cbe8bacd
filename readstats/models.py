from datetime import date
from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from typing import Dict, Iterator, List, Optional, Set, Tuple

NO_AUTHORS = "N/A"

class BookKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    authors: str = NO_AUTHORS
    md5: str

    @field_validator("authors", mode="before")
    @classmethod
    def _authors_sentinel(cls, v):
        if v is None or not str(v).strip():
            return NO_AUTHORS
        return v

    def label(self) -> str:
        return f"'{self.title}' by {self.authors} ({self.md5})"

class Book(BaseModel):
    key: BookKey
    pages: Optional[int] = None  # current total page count
    last_open: Optional[int] = None
    highlights: int = 0
    notes: int = 0
    series: Optional[str] = None
    language: Optional[str] = None

class RawVisit(BaseModel):
    model_config = ConfigDict(frozen=True)

    page: int
    start_time: int
    duration: int = 0
    total_pages: int

    @property
    def key(self) -> Tuple[int, int]:
        return (self.page, self.start_time)

class RescaledVisit(BaseModel):
    model_config = ConfigDict(frozen=True)

    page: int
    first_page: int
    last_page: int
    start_time: int
    duration: int
    total_pages: int

    @property
    def end_time(self) -> int:
        return self.start_time + self.duration

    @property
    def page_range(self) -> range:
        return range(self.first_page, self.last_page + 1)

class NormalizedVisit(RescaledVisit):
    counted_duration: int = 0
    capped_duration: int = 0
    open_marker: bool = False
    below_min: bool = False

class Session(BaseModel):
    start_time: int
    end_time: int
    duration: int = 0
    pages: Set[int] = Field(default_factory=set)
    visits: List[NormalizedVisit] = Field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def first_page(self) -> int:
        return self.visits[0].first_page

    @property
    def max_page(self) -> int:
        return max(v.last_page for v in self.visits)

    @property
    def is_timed(self) -> bool:
        return self.duration > 0

class Completion(BaseModel):
    start_date: date
    end_date: date
    reading_time: int  # seconds
    session_count: int
    pages_read: int

    @computed_field
    @property
    def average_session_duration(self) -> Optional[int]:
        if self.session_count > 0:
            return self.reading_time // self.session_count
        return None

    @computed_field
    @property
    def average_speed(self) -> Optional[float]:
        """Pages per hour."""
        if self.reading_time > 0 and self.pages_read > 0:
            return self.pages_read / (self.reading_time / 3600.0)
        return None

    @computed_field
    @property
    def calendar_length_days(self) -> int:
        return (self.end_date - self.start_date).days

class DailyActivity(BaseModel):
    date: str  # yyyy-mm-dd
    pages_read: int = 0
    read_time: int = 0  # seconds

class ActivityYear(BaseModel):
    year: int
    data: List[DailyActivity] = Field(default_factory=list)
    max_scale_override: Optional[int] = None

    @property
    def max_scale_seconds(self) -> int:
        if self.max_scale_override is not None:
            return self.max_scale_override
        return max((d.read_time for d in self.data), default=0)

    def to_document(self) -> dict:
        return {
            "data": [d.model_dump() for d in self.data],
            "config": {"max_scale_seconds": self.max_scale_override},
        }

    def __iter__(self) -> Iterator[DailyActivity]:
        return iter(self.data)

    def __len__(self) -> int:
        return len(self.data)

    def __getitem__(self, idx):
        return self.data[idx]

class MergedHistory(BaseModel):
    book: Book
    visits: List[RawVisit] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)

    @property
    def key(self) -> BookKey:
        return self.book.key

class DroppedRecord(BaseModel):
    """A visit row left out of the merged history. `book` is None when the row names no known book."""
    source_id: str
    book: Optional[BookKey] = None
    page: Optional[int] = None
    start_time: Optional[int] = None
    reason: str

class SourceSnapshot(BaseModel):
    """Everything one statistics source holds, keyed by book identity."""
    source_id: str
    histories: List[MergedHistory] = Field(default_factory=list)
    dropped: List[DroppedRecord] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @property
    def book_keys(self) -> List[BookKey]:
        return [h.key for h in self.histories]

class VisitConflict(BaseModel):
    book: BookKey
    page: int
    start_time: int
    kept_duration: int
    discarded_duration: int
    kept_source: str
    discarded_source: str

class MergeResult(BaseModel):
    histories: List[MergedHistory] = Field(default_factory=list)
    deleted: List[BookKey] = Field(default_factory=list)
    pending: List[BookKey] = Field(default_factory=list)
    conflicts: List[VisitConflict] = Field(default_factory=list)
    dropped: List[DroppedRecord] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    sources_read: List[str] = Field(default_factory=list)
    sources_unavailable: List[str] = Field(default_factory=list)

class BookStats(BaseModel):
    book: Book
    total_read_time: int = 0
    total_read_time_capped: int = 0
    distinct_pages_read: int = 0
    current_page: Optional[int] = None
    session_count: int = 0
    average_session_duration: int = 0
    longest_session_duration: int = 0
    reading_speed: float = 0.0  # pages per hour
    last_read_date: Optional[date] = None
    completions: List[Completion] = Field(default_factory=list)
    active_years: List[int] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

class StreakInfo(BaseModel):
    days: int = 0
    start_date: Optional[str] = None
    end_date: Optional[str] = None

class WeeklyStats(BaseModel):
    start_date: str
    end_date: str
    read_time: int = 0
    pages_read: int = 0
    avg_pages_per_day: float = 0.0
    avg_read_time_per_day: float = 0.0

class LibraryStats(BaseModel):
    total_read_time: int = 0
    total_page_reads: int = 0
    longest_read_time_in_day: int = 0
    most_pages_in_day: int = 0
    average_session_duration: Optional[int] = None
    longest_session_duration: Optional[int] = None
    total_completions: int = 0
    books_completed: int = 0
    most_completions: int = 0
    longest_streak: StreakInfo = Field(default_factory=StreakInfo)
    current_streak: StreakInfo = Field(default_factory=StreakInfo)
    weeks: List[WeeklyStats] = Field(default_factory=list)
    daily_activity: List[DailyActivity] = Field(default_factory=list)

# Snapshot cache persisted between runs

class SourceStatus(BaseModel):
    source_id: str
    books: List[BookKey] = Field(default_factory=list)
    last_read_at: float = 0.0
    last_result: str = "ok"
    error_count: int = 0

class SnapshotState(BaseModel):
    sources: Dict[str, SourceStatus] = Field(default_factory=dict)
    deleted: List[BookKey] = Field(default_factory=list)
    last_successful_run: float = 0.0
