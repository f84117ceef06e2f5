"""HTML fragments for the query panel. Everything here is pure string building."""
import os
import re
from html import escape
from typing import TYPE_CHECKING, Optional
from urllib.parse import quote

from querybar.core.config import settings
from querybar.schemas.log_entry import LogEntry, SourceLocation

if TYPE_CHECKING:
    from querybar.services.collector import QueryCollector

SQL_KEYWORDS = (
    "SELECT", "FROM", "WHERE", "AND", "OR", "NOT", "IN", "IS", "NULL", "LIKE", "BETWEEN",
    "INSERT", "INTO", "VALUES", "UPDATE", "SET", "DELETE", "CREATE", "DROP", "ALTER", "TABLE",
    "JOIN", "LEFT", "RIGHT", "INNER", "OUTER", "CROSS", "ON", "AS", "DISTINCT",
    "GROUP", "BY", "ORDER", "HAVING", "LIMIT", "OFFSET", "UNION", "ALL", "ASC", "DESC",
    "CASE", "WHEN", "THEN", "ELSE", "END", "EXISTS", "BEGIN", "COMMIT", "ROLLBACK", "PRAGMA",
)
_KEYWORD_RE = re.compile(r"\b(" + "|".join(SQL_KEYWORDS) + r")\b", re.IGNORECASE)

STYLES = """<style type="text/css">
.querybar-panel table { border-collapse: collapse; }
.querybar-panel td, .querybar-panel th { padding: 2px 6px; vertical-align: top; }
.querybar-panel td.sql { background-color: white !important; font-family: monospace; }
.querybar-panel .querybar-kw { color: #00008b; }
.querybar-panel .querybar-source { display: block; font-size: 90%; color: #777; }
</style>"""


def format_ms(value: float) -> str:
    """One decimal, space as thousands separator: 12345.67 -> '12 345.7'."""
    return f"{value:,.1f}".replace(",", " ")


def _plain_number(value: float) -> str:
    return f"{value:.3f}".rstrip("0").rstrip(".")


def dump_sql(sql: str) -> str:
    """Escapes the statement and highlights SQL keywords."""
    escaped = escape(sql)
    return _KEYWORD_RE.sub(lambda m: f'<strong class="querybar-kw">{m.group(1)}</strong>', escaped)


def editor_link(source: Optional[SourceLocation]) -> str:
    if source is None:
        return ""
    uri = settings.EDITOR_URI.format(file=quote(source.file, safe="/"), line=source.line)
    label = f"{os.path.basename(source.file)}:{source.line}"
    return (
        f'<a href="{escape(uri)}" class="querybar-source" '
        f'title="{escape(source.file)}:{source.line}">{escape(label)}</a>'
    )


def render_tab(collector: "QueryCollector") -> str:
    count = collector.query_count
    label = str(count)
    if count:
        label += f" queries / {format_ms(collector.total_time)} ms"
    return f'<span class="querybar-tab" title="SQL queries">{label}</span>'


def render_row(collector: "QueryCollector", entry: LogEntry) -> str:
    extractor = collector.extractor
    return (
        "<tr>"
        f'<td class="time">{_plain_number(1000 * extractor.extract_time(entry))}</td>'
        f'<td class="sql">{dump_sql(extractor.extract_sql(entry))}{editor_link(entry.source)}</td>'
        f'<td class="mem">{_plain_number(extractor.extract_mem(entry))}</td>'
        f'<td class="method">{escape(extractor.extract_method(entry))}</td>'
        "</tr>"
    )


def render_rows(collector: "QueryCollector") -> str:
    return "".join(render_row(collector, entry) for entry in collector.entries)


def render_panel(collector: "QueryCollector") -> str:
    heading = f"Queries: {collector.query_count}, time: {format_ms(collector.total_time)} ms"
    if collector.entry_count != collector.query_count:
        heading += f" (logged: {collector.entry_count})"
    return (
        f"{STYLES}\n"
        f"<h1>{heading}</h1>\n"
        '<div class="querybar-inner querybar-panel">\n'
        "<table>\n"
        "<tr>"
        '<th class="time">Time&nbsp;ms</th>'
        '<th class="sql">SQL</th>'
        '<th class="mem">Mem&nbsp;MB</th>'
        '<th class="method">Method</th>'
        "</tr>\n"
        f"{render_rows(collector)}\n"
        "</table>\n"
        "</div>"
    )
