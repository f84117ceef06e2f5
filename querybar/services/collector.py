import logging
from typing import Iterable, Optional

from sqlalchemy.engine import Connection, Engine

from querybar.db.debug import DebugConnection
from querybar.schemas.log_entry import LogEntry, Severity
from querybar.services.callsite import CallSiteResolver, capture_stack
from querybar.services.extractor import FieldExtractor
from querybar.services import render

logger = logging.getLogger(__name__)


class QueryCollector:
    """
    Debug-bar panel listing the SQL statements of one request.

    Acts as the logger of a ``DebugConnection``: every call is stored as an
    immutable ``LogEntry`` together with the application line that issued it.
    Create one per request; the entry list is never shared.
    """

    def __init__(
        self,
        extractor: Optional[FieldExtractor] = None,
        resolver: Optional[CallSiteResolver] = None,
    ):
        self.extractor = extractor or FieldExtractor()
        self.resolver = resolver or CallSiteResolver()
        self.connection: Optional[DebugConnection] = None
        self._entries: list[LogEntry] = []

    @property
    def entries(self) -> tuple[LogEntry, ...]:
        return tuple(self._entries)

    # --- logger interface ---

    def emergency(self, message: str) -> None:
        self.log(message, Severity.EMERGENCY)

    def alert(self, message: str) -> None:
        self.log(message, Severity.ALERT)

    def critical(self, message: str) -> None:
        self.log(message, Severity.CRITICAL)

    def error(self, message: str) -> None:
        self.log(message, Severity.ERROR)

    def warning(self, message: str) -> None:
        self.log(message, Severity.WARNING)

    def notice(self, message: str) -> None:
        self.log(message, Severity.NOTICE)

    def info(self, message: str) -> None:
        self.log(message, Severity.INFO)

    def debug(self, message: str) -> None:
        self.log(message, Severity.DEBUG)

    def log(self, message: str, severity: Optional[Severity] = None) -> None:
        source = self.resolver.resolve(capture_stack(skip=1))
        self._entries.append(LogEntry(severity=severity, message=message, source=source))

    # --- aggregates ---

    @property
    def total_time(self) -> float:
        """Total time of the logged statements in ms."""
        return 1000 * sum(self.extractor.extract_time(entry) for entry in self._entries)

    @property
    def query_count(self) -> int:
        """Statement count as reported by the connection, not len(entries)."""
        if self.connection is None:
            return 0
        return self.connection.query_count

    @property
    def entry_count(self) -> int:
        return len(self._entries)

    # --- panel interface ---

    def render_tab(self) -> str:
        return render.render_tab(self)

    def render_panel(self) -> str:
        return render.render_panel(self)

    # --- registration ---

    def set_connection(self, connection: Engine | Connection | DebugConnection) -> DebugConnection:
        """Attaches to a connection and switches on the details this panel reads."""
        if not isinstance(connection, DebugConnection):
            connection = DebugConnection(connection)
        elif not connection.debug:
            connection.use_debug(True)

        connection.configure(
            time_enabled=True,
            time_precision=4,
            mem_enabled=True,
            method_enabled=True,
            outer_glue=self.extractor.outer,
            inner_glue=self.extractor.inner,
        )
        connection.set_logger(self)
        self.connection = connection
        return connection

    @classmethod
    def register(
        cls,
        connection: Engine | Connection | DebugConnection,
        library_paths: Iterable[str] | str = (),
        bar=None,
    ) -> "QueryCollector":
        """
        Creates a collector logging the given connection.

        ``library_paths`` are skipped when looking for the line that issued a
        query. ``bar`` is the debug bar to add the panel to, if any.
        """
        panel = cls(resolver=CallSiteResolver(library_paths))
        if bar is not None:
            bar.add_panel(panel)
        panel.set_connection(connection)
        logger.debug(
            "Query panel registered (library paths: %d)", len(panel.resolver.library_paths)
        )
        return panel
