"""
Query logging on the SQLAlchemy side.

``DebugConnection`` hooks the cursor events of an Engine or a single
Connection, counts statements and hands one delimited message per statement
to whatever logger is attached (normally a ``QueryCollector``).
"""
import logging
import time
from typing import Any, Optional, Protocol

import psutil
from sqlalchemy import event
from sqlalchemy.engine import Connection, Engine

from querybar.core.config import settings
from querybar.schemas.log_entry import Severity
from querybar.services.extractor import FieldExtractor

logger = logging.getLogger(__name__)

MAX_PARAMS_REPR = 500
# Stands in for the outer glue inside field values
GLUE_PLACEHOLDER = "\u00a6"


class QueryLogger(Protocol):
    def log(self, message: str, severity: Optional[Severity] = None) -> None: ...


class DebugConnection:
    def __init__(
        self,
        bind: Engine | Connection,
        log_level: Severity = Severity.DEBUG,
        include_params: bool = True,
    ):
        self.bind = bind
        self.log_level = log_level
        self.include_params = include_params
        self.query_count = 0
        self.logger: Optional[QueryLogger] = None

        # Detail flags, all off until configured
        self.time_enabled = False
        self.time_precision = settings.TIME_PRECISION
        self.mem_enabled = False
        self.mem_precision = settings.MEM_PRECISION
        self.method_enabled = False
        self.outer_glue = settings.OUTER_GLUE
        self.inner_glue = settings.INNER_GLUE

        self._process = psutil.Process()
        self._listening = False
        self.use_debug(True)

    @property
    def debug(self) -> bool:
        return self._listening

    def use_debug(self, enabled: bool) -> None:
        if enabled and not self._listening:
            event.listen(self.bind, "before_cursor_execute", self._before_cursor_execute)
            event.listen(self.bind, "after_cursor_execute", self._after_cursor_execute)
            self._listening = True
            logger.debug("Query logging enabled on %s", type(self.bind).__name__)
        elif not enabled and self._listening:
            event.remove(self.bind, "before_cursor_execute", self._before_cursor_execute)
            event.remove(self.bind, "after_cursor_execute", self._after_cursor_execute)
            self._listening = False
            logger.debug("Query logging disabled on %s", type(self.bind).__name__)

    def configure(
        self,
        *,
        time_enabled: Optional[bool] = None,
        time_precision: Optional[int] = None,
        mem_enabled: Optional[bool] = None,
        mem_precision: Optional[int] = None,
        method_enabled: Optional[bool] = None,
        outer_glue: Optional[str] = None,
        inner_glue: Optional[str] = None,
    ) -> None:
        """Sets logging details; ``None`` leaves a setting unchanged."""
        if time_enabled is not None:
            self.time_enabled = time_enabled
        if time_precision is not None:
            self.time_precision = time_precision
        if mem_enabled is not None:
            self.mem_enabled = mem_enabled
        if mem_precision is not None:
            self.mem_precision = mem_precision
        if method_enabled is not None:
            self.method_enabled = method_enabled
        if outer_glue is not None:
            self.outer_glue = outer_glue
        if inner_glue is not None:
            self.inner_glue = inner_glue

    def set_logger(self, query_logger: Optional[QueryLogger]) -> None:
        self.logger = query_logger

    def close(self) -> None:
        self.use_debug(False)
        self.logger = None

    def _fields(self) -> tuple[str, ...]:
        fields = []
        if self.time_enabled:
            fields.append("time")
        if self.mem_enabled:
            fields.append("mem")
        if self.method_enabled:
            fields.append("method")
        fields.append("sql")
        return tuple(fields)

    def memory_mb(self) -> float:
        return self._process.memory_info().rss / (1024 * 1024)

    def format_message(self, elapsed: float, method: str, sql: str, memory: Optional[float] = None) -> str:
        values: dict[str, Any] = {"sql": sql}
        if self.time_enabled:
            values["time"] = f"{elapsed:.{self.time_precision}f}"
        if self.mem_enabled:
            mem = self.memory_mb() if memory is None else memory
            values["mem"] = f"{mem:.{self.mem_precision}f}"
        if self.method_enabled:
            values["method"] = method
        formatter = FieldExtractor(outer=self.outer_glue, inner=self.inner_glue, fields=self._fields())
        return formatter.format(**{name: self._neutralize(value) for name, value in values.items()})

    def _neutralize(self, value: Any) -> str:
        """Keeps a value inside its own segment."""
        return str(value).replace(self.outer_glue, GLUE_PLACEHOLDER * len(self.outer_glue))

    def _statement_text(self, statement: str, parameters: Any) -> str:
        if not self.include_params or not parameters:
            return statement
        params = repr(parameters)
        if len(params) > MAX_PARAMS_REPR:
            params = params[:MAX_PARAMS_REPR] + "..."
        return f"{statement} -- params: {params}"

    def _before_cursor_execute(self, conn, cursor, statement, parameters, context, executemany):
        # Kept on the execution context, which ends with the statement
        if context is not None:
            context._querybar_started = time.perf_counter()

    def _after_cursor_execute(self, conn, cursor, statement, parameters, context, executemany):
        started = getattr(context, "_querybar_started", None)
        elapsed = time.perf_counter() - started if started is not None else 0.0
        self.query_count += 1

        if self.logger is None:
            return

        method = f"{type(cursor).__name__}.{'executemany' if executemany else 'execute'}"
        message = self.format_message(elapsed, method, self._statement_text(statement, parameters))
        self.logger.log(message, self.log_level)
