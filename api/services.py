"""
Service container for the API.

One Services instance per app: the directory store, account service, change
feed and extractor all share one database path. Built lazily on first
request so importing the app never touches the filesystem.
"""

import logging
import threading
from pathlib import Path

from fastapi import Request

from roster import db as db_module
from roster.accounts import AccountService
from roster.directory import DirectoryStore
from roster.events import ChangeFeed
from roster.extraction import SheetExtractor
from roster.storage import SQLiteDirectoryBackend

logger = logging.getLogger(__name__)


class Services:
    def __init__(
        self,
        db_path: str | Path | None = None,
        extractor=None,
        password_iterations: int | None = None,
    ):
        self.db_path = Path(db_path) if db_path else db_module.get_db_path()
        self.feed = ChangeFeed()
        self.backend = SQLiteDirectoryBackend(self.db_path, feed=self.feed)
        self.store = DirectoryStore(self.backend)
        self.accounts = AccountService(self.db_path, password_iterations=password_iterations)
        self._extractor = extractor

    @property
    def extractor(self):
        if self._extractor is None:
            self._extractor = SheetExtractor()
        return self._extractor


_build_lock = threading.Lock()


def get_services(request: Request) -> Services:
    """FastAPI dependency: the app's Services, created on first use."""
    app = request.app
    services = getattr(app.state, "services", None)
    if services is None:
        with _build_lock:
            services = getattr(app.state, "services", None)
            if services is None:
                services = Services()
                app.state.services = services
                logger.info(f"Services ready, DB path: {services.db_path}")
    return services
