# src/craft_search/local/query_log.py

"""Fire-and-forget query log sink.

Search queries are appended as JSON lines to a shared log file for analytics.
Writes happen on a single background worker under a file lock so that several
server processes can share the file. Logging problems never reach the
caller: they are reported through `logging` and, as a last resort, the entry
is printed to stderr with a `FALLBACK_QUERY_LOG` prefix.
"""

import concurrent.futures
import datetime
import json
import logging
import os
import pathlib
import sys
from typing import Any, Dict, Optional

from filelock import FileLock, Timeout

from craft_search import defaults

logger = logging.getLogger(__name__)

LOCK_TIMEOUT_SECONDS = 2


class QueryLogSink:
    """Appends `search_query` events to a JSONL file in the background.

    Attributes:
        log_path: The JSONL file events are appended to.
        lock_path: The lock file guarding `log_path`.
    """

    def __init__(self, log_path: Optional[pathlib.Path] = None):
        self.log_path = pathlib.Path(log_path or defaults.DEFAULT_QUERY_LOG_PATH)
        self.lock_path = self.log_path.with_name(self.log_path.name + ".lock")
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="query-log"
        )

    @staticmethod
    def build_event(
        query: str,
        results_count: int,
        user_id: Optional[str] = None,
        status: str = "SUCCESS",
    ) -> Dict[str, Any]:
        """Returns the JSON-serializable log entry for one search."""
        return {
            "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "event": "search_query",
            "query": query,
            "results_count": results_count,
            "user_id": user_id,
            "status": status,
        }

    def emit(
        self,
        query: str,
        results_count: int,
        user_id: Optional[str] = None,
        status: str = "SUCCESS",
    ) -> Optional["concurrent.futures.Future[None]"]:
        """Schedules a log write and returns immediately.

        Returns:
            The future of the background write, or None if the sink is closed.
        """
        log_entry = self.build_event(query, results_count, user_id, status)
        try:
            return self._executor.submit(self.write_event, log_entry)
        except RuntimeError as e:
            # Raised by a shut-down executor.
            logger.warning("Query log sink unavailable: %s. Entry dropped: %s", e, log_entry)
            return None

    def write_event(self, log_entry: Dict[str, Any]) -> None:
        """Appends one entry to the log file. Never raises."""
        line = json.dumps(log_entry, ensure_ascii=False)
        try:
            os.makedirs(self.log_path.parent, exist_ok=True)
        except OSError as e:
            logger.error(
                "Query logging error: Could not create log directory %s: %s. "
                "Log entry: %s",
                self.log_path.parent,
                e,
                log_entry,
            )
            print(f"FALLBACK_QUERY_LOG (DIR_ERROR): {line}", file=sys.stderr)
            return

        lock = FileLock(str(self.lock_path), timeout=LOCK_TIMEOUT_SECONDS)
        try:
            with lock:
                with open(self.log_path, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
        except Timeout:
            logger.warning(
                "Query logging error: Timeout acquiring lock for %s. "
                "Log entry lost: %s",
                self.lock_path,
                log_entry,
            )
            print(f"FALLBACK_QUERY_LOG (LOCK_TIMEOUT): {line}", file=sys.stderr)
        except Exception as e:
            logger.error(
                "Query logging error: Failed to write to %s: %s. Log entry: %s",
                self.log_path,
                e,
                log_entry,
                exc_info=True,
            )
            print(f"FALLBACK_QUERY_LOG (WRITE_ERROR): {line}", file=sys.stderr)

    def close(self, wait: bool = True) -> None:
        """Stops the background worker, by default after pending writes."""
        self._executor.shutdown(wait=wait)
