import asyncio
import logging
import signal
import sys
import uvicorn
import time
from typing import Dict, List, Optional, Sequence

from .config import settings, StatsConfig
from .state import StateManager
from .sources.koreader import StatisticsSource, read_sources
from .merger import SyncMerger
from .models import LibraryStats, MergedHistory, MergeResult
from .projector import StatsProjector
from .library import build_library_stats
from .timeconfig import TimeConfig
from .export import export_all
from . import server

logger = logging.getLogger("main")

def setup_logging():
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    # Silence noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

class StatsService:
    def __init__(self, source_paths: Optional[Sequence[str]] = None, config: Optional[StatsConfig] = None,
                 time_config: Optional[TimeConfig] = None, state_manager: Optional[StateManager] = None,
                 output_dir: Optional[str] = None):
        self.running = True
        self.source_paths = list(source_paths if source_paths is not None else settings.source_paths)
        self.config = config or StatsConfig.from_settings(settings)
        self.time_config = time_config or TimeConfig.from_strings(settings.TIMEZONE, settings.DAY_START_TIME)
        self.state_manager = state_manager or StateManager(settings.STATE_PATH, settings.PERSIST_ENABLED)
        self.output_dir = output_dir if output_dir is not None else settings.OUTPUT_DIR
        self.merger = SyncMerger(self.state_manager)

        self.merge_result: Optional[MergeResult] = None
        self.projectors: Dict[str, StatsProjector] = {}
        self.library: Optional[LibraryStats] = None
        self.warnings: List[str] = []

        # Link service to server module
        server.service = self

    def _project(self, history: MergedHistory) -> StatsProjector:
        projector = StatsProjector(history, self.config, self.time_config)
        # Force the pipeline so failures surface here rather than in a request handler
        projector.snapshot()
        return projector

    async def project_books(self, histories: Sequence[MergedHistory]) -> Dict[str, StatsProjector]:
        """Books are independent, so compute them in parallel chunks. One bad book never stops the rest."""
        projectors: Dict[str, StatsProjector] = {}
        chunk_size = max(1, settings.PROJECTION_CHUNK_SIZE)
        for i in range(0, len(histories), chunk_size):
            chunk = histories[i:i + chunk_size]
            tasks = [asyncio.to_thread(self._project, h) for h in chunk]
            results = await asyncio.gather(*tasks, return_exceptions=True)

            for history, res in zip(chunk, results):
                if isinstance(res, Exception):
                    msg = f"Failed to compute stats for {history.key.label()}: {res}"
                    logger.error(msg, exc_info=res)
                    self.warnings.append(msg)
                    continue
                projectors[history.key.md5] = res
                self.warnings.extend(res.warnings)
        return projectors

    async def run_once(self) -> LibraryStats:
        self.warnings = []
        sources = [StatisticsSource(p, timeout=settings.SOURCE_READ_TIMEOUT_SECONDS) for p in self.source_paths]
        if not sources:
            logger.warning("No statistics sources configured (STATS_SOURCE_PATHS)")

        snapshots, failures = await read_sources(sources)
        for source_id, reason in failures.items():
            self.warnings.append(f"Source {source_id} unavailable: {reason}")

        result = self.merger.merge(snapshots, unavailable=failures.keys())
        self.warnings.extend(result.warnings)

        projectors = await self.project_books(result.histories)
        library = build_library_stats(list(projectors.values()), today=self.time_config.today())

        if self.output_dir:
            export_all(self.output_dir, list(projectors.values()), library, self.config.max_scale_seconds,
                       deleted=result.deleted)

        self.merge_result = result
        self.projectors = projectors
        self.library = library

        self.state_manager.state.last_successful_run = time.time()
        self.state_manager.save()

        for warning in self.warnings:
            logger.warning(warning)
        logger.info(
            f"Computed stats for {len(projectors)} books: {library.total_read_time}s read, "
            f"{library.total_completions} completions"
        )
        return library

    async def stats_loop(self):
        while self.running:
            start_time = time.time()
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Error in stats loop: {e}", exc_info=True)

            if settings.STATS_INTERVAL_SECONDS <= 0:
                break

            # Wait for remainder of interval
            elapsed = time.time() - start_time
            sleep_time = max(1, settings.STATS_INTERVAL_SECONDS - elapsed)
            await asyncio.sleep(sleep_time)

    async def start(self):
        tasks = [asyncio.create_task(self.stats_loop())]

        if settings.HTTP_SERVER_ENABLED:
            config = uvicorn.Config(server.app, host="0.0.0.0", port=settings.HTTP_SERVER_PORT, log_level="warning")
            server_task = uvicorn.Server(config).serve()
            tasks.append(asyncio.create_task(server_task))

        try:
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            pass
        finally:
            self.state_manager.save()

def handle_sigterm(sig, frame):
    logger.info("Received SIGTERM, shutting down...")
    sys.exit(0)

def main():
    setup_logging()
    signal.signal(signal.SIGTERM, handle_sigterm)
    service = StatsService()
    try:
        asyncio.run(service.start())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")

if __name__ == "__main__":
    main()
