import time
from fastapi import FastAPI, Depends, HTTPException, Header
from typing import Optional
from .config import settings

app = FastAPI(title="Reading Stats")
service = None  # set by StatsService

def get_token(x_token: Optional[str] = Header(None, alias="X-Token")):
    if settings.HTTP_SERVER_TOKEN and x_token != settings.HTTP_SERVER_TOKEN:
        raise HTTPException(status_code=401, detail="Invalid token")

def _ready():
    if not service or service.library is None:
        raise HTTPException(status_code=503, detail="Stats not computed yet")
    return service

@app.get("/healthz")
def healthz():
    if not service:
        return {"status": "starting"}

    last_run = service.state_manager.state.last_successful_run
    if settings.STATS_INTERVAL_SECONDS > 0 and time.time() - last_run > (settings.STATS_INTERVAL_SECONDS * 3 + 60):
        return {"status": "lagging", "last_run_age": time.time() - last_run}

    return {"status": "ok"}

@app.get("/status", dependencies=[Depends(get_token)])
def status():
    if not service:
        return {"status": "not_ready"}

    result = service.merge_result
    return {
        "books": len(service.projectors),
        "sources_read": result.sources_read if result else [],
        "sources_unavailable": result.sources_unavailable if result else [],
        "deleted": [k.model_dump() for k in result.deleted] if result else [],
        "warnings": service.warnings,
        "last_run": service.state_manager.state.last_successful_run,
        "config": {
            "interval": settings.STATS_INTERVAL_SECONDS,
            "min_sec": service.config.min_sec,
            "max_sec": service.config.max_sec,
            "session_gap_seconds": service.config.session_gap_seconds,
        }
    }

@app.get("/books", dependencies=[Depends(get_token)])
def books():
    svc = _ready()
    return [
        {"md5": md5, "title": p.history.key.title, "authors": p.history.key.authors}
        for md5, p in sorted(svc.projectors.items(), key=lambda kv: kv[1].history.key.title)
    ]

@app.get("/books/{md5}", dependencies=[Depends(get_token)])
def book(md5: str):
    svc = _ready()
    projector = svc.projectors.get(md5)
    if projector is None:
        raise HTTPException(status_code=404, detail="Unknown book")
    return projector.snapshot().model_dump(mode="json")

@app.get("/books/{md5}/activity/{year}", dependencies=[Depends(get_token)])
def book_activity(md5: str, year: int):
    svc = _ready()
    projector = svc.projectors.get(md5)
    if projector is None:
        raise HTTPException(status_code=404, detail="Unknown book")
    return projector.daily_activity(year).to_document()

@app.get("/activity/{year}", dependencies=[Depends(get_token)])
def activity(year: int):
    svc = _ready()
    days = [d.model_dump() for d in svc.library.daily_activity if d.date.startswith(f"{year:04d}-")]
    return {"data": days, "config": {"max_scale_seconds": svc.config.max_scale_seconds}}

@app.get("/metrics")
def metrics():
    if not service or service.library is None:
        return ""

    lib = service.library
    lines = [
        f'readstats_books {len(service.projectors)}',
        f'readstats_total_read_seconds {lib.total_read_time}',
        f'readstats_total_completions {lib.total_completions}',
        f'readstats_last_run_timestamp {service.state_manager.state.last_successful_run}',
    ]
    return "\n".join(lines)
