"""
Embedded PostgreSQL server for the order store.
Uses pgserver for pip-installable PostgreSQL binaries.
"""

import logging
import os
import urllib.parse

import psycopg2

import pgserver

from store.config import settings
from store.schema import bootstrap_schema

logger = logging.getLogger(__name__)


class OrderStoreServer:
    """Manages an embedded PostgreSQL instance holding the order tables."""

    def __init__(self, data_dir=None):
        self.data_dir = os.path.abspath(data_dir or settings.data_dir)
        self._pg = None

    def start(self):
        """Start the embedded PostgreSQL server and bootstrap the schema."""
        os.makedirs(self.data_dir, exist_ok=True)
        self._pg = pgserver.get_server(self.data_dir)
        logger.info("Order store running in %s", self.data_dir)

        conn = self.connect()
        try:
            bootstrap_schema(conn)
        finally:
            conn.close()
        return self

    # ── Public API ───────────────────────────────────────────────────

    def connect(self):
        """Open a new connection over the server's local socket."""
        return psycopg2.connect(self._pg.get_uri())

    def conn_info(self):
        """Return connection parameters for StoreClient."""
        uri = self._pg.get_uri()
        parsed = urllib.parse.urlparse(uri)
        params = urllib.parse.parse_qs(parsed.query)

        return {
            "host": params.get("host", ["/tmp"])[0],
            "port": parsed.port or 5432,
            "dbname": parsed.path.lstrip("/") or settings.dbname,
            "user": parsed.username or os.getenv("USER", "postgres"),
        }

    def stop(self):
        """Stop the embedded PostgreSQL server."""
        if self._pg:
            self._pg.cleanup()
            self._pg = None
            logger.info("Order store in %s stopped", self.data_dir)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *args):
        self.stop()
