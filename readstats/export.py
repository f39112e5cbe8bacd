import json
import logging
import os
from pathlib import Path
from typing import Dict, Iterable, List, Sequence
from .models import ActivityYear, BookKey, DailyActivity, LibraryStats
from .projector import StatsProjector

logger = logging.getLogger(__name__)

def _write_json(path: Path, payload) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_path, path)
    return path

def activity_by_year(daily: Sequence[DailyActivity], max_scale_seconds=None) -> Dict[int, ActivityYear]:
    years: Dict[int, ActivityYear] = {}
    for day in daily:
        year = int(day.date[:4])
        if year not in years:
            years[year] = ActivityYear(year=year, max_scale_override=max_scale_seconds)
        years[year].data.append(day)
    return years

def export_daily_activity(output_dir: Path, library: LibraryStats, max_scale_seconds=None) -> List[int]:
    """Write daily_activity_<year>.json for each active year. Returns the years, newest first."""
    years = activity_by_year(library.daily_activity, max_scale_seconds)
    for year, activity in years.items():
        _write_json(output_dir / f"daily_activity_{year}.json", activity.to_document())
    return sorted(years, reverse=True)

def export_book(output_dir: Path, projector: StatsProjector) -> Path:
    stats = projector.snapshot()
    payload = stats.model_dump(mode="json")
    payload["daily_activity"] = {
        str(year): projector.daily_activity(year).to_document() for year in stats.active_years
    }
    return _write_json(output_dir / "books" / f"{stats.book.key.md5}.json", payload)

def remove_books(output_dir: Path, keys: Iterable[BookKey], keep: Iterable[str] = ()) -> List[str]:
    """Unlink books/<md5>.json for deleted books. md5s in `keep` still have a live book and are left alone."""
    keep = set(keep)
    removed = []
    for key in keys:
        if key.md5 in keep:
            continue
        path = output_dir / "books" / f"{key.md5}.json"
        if path.exists():
            path.unlink()
            removed.append(key.md5)
            logger.info(f"Removed stats file for deleted book {key.label()}")
    return removed

def export_all(output_dir: str, projectors: Sequence[StatsProjector], library: LibraryStats,
               max_scale_seconds=None, deleted: Iterable[BookKey] = ()) -> List[int]:
    out = Path(output_dir)
    years = export_daily_activity(out, library, max_scale_seconds)
    for projector in projectors:
        export_book(out, projector)
    remove_books(out, deleted, keep=(p.history.key.md5 for p in projectors))
    library_doc = library.model_dump(mode="json")
    library_doc["available_years"] = years
    _write_json(out / "library.json", library_doc)
    logger.info(f"Exported stats for {len(projectors)} books and {len(years)} years to {out}")
    return years
