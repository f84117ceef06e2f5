"""Producer side: messages emitted from SQLAlchemy cursor events."""
import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from querybar.db.debug import DebugConnection
from querybar.schemas.log_entry import LogEntry, Severity
from querybar.services.extractor import FieldExtractor


class RecordingLogger:
    def __init__(self):
        self.calls = []

    def log(self, message, severity=None):
        self.calls.append((message, severity))


@pytest.fixture()
def debug(engine):
    conn = DebugConnection(engine)
    conn.configure(time_enabled=True, mem_enabled=True, method_enabled=True)
    recorder = RecordingLogger()
    conn.set_logger(recorder)
    try:
        yield conn, recorder
    finally:
        conn.close()


class TestMessages:
    def test_all_details(self, engine, debug, extractor):
        _, recorder = debug
        with engine.connect() as c:
            c.execute(text("SELECT 1"))

        message, severity = recorder.calls[0]
        assert severity == Severity.DEBUG
        entry = LogEntry(message=message)
        assert extractor.extract_sql(entry) == "SELECT 1"
        assert extractor.extract_method(entry) == "Cursor.execute"
        assert extractor.extract(entry, "time", part="key") == "time"
        # precision 4
        assert len(extractor.extract(entry, "time").split(".")[1]) == 4

    def test_parameters_appended(self, engine, debug, extractor):
        _, recorder = debug
        with engine.connect() as c:
            c.execute(text("SELECT :x"), {"x": 5})
        sql = extractor.extract_sql(LogEntry(message=recorder.calls[0][0]))
        assert sql.startswith("SELECT ?")
        assert "-- params: " in sql
        assert "5" in sql.split("-- params: ")[1]

    def test_parameters_off(self, engine, debug, extractor):
        conn, recorder = debug
        conn.include_params = False
        with engine.connect() as c:
            c.execute(text("SELECT :x"), {"x": 5})
        assert extractor.extract_sql(LogEntry(message=recorder.calls[0][0])) == "SELECT ?"

    def test_executemany(self, engine, debug, extractor):
        _, recorder = debug
        with engine.begin() as c:
            c.execute(text("CREATE TABLE t (x INTEGER)"))
            c.execute(text("INSERT INTO t (x) VALUES (:x)"), [{"x": 1}, {"x": 2}])
        method = extractor.extract_method(LogEntry(message=recorder.calls[-1][0]))
        assert method == "Cursor.executemany"

    def test_only_enabled_fields(self, engine):
        conn = DebugConnection(engine)
        conn.configure(time_enabled=True)
        recorder = RecordingLogger()
        conn.set_logger(recorder)
        with engine.connect() as c:
            c.execute(text("SELECT 1"))
        conn.close()

        message = recorder.calls[0][0]
        reader = FieldExtractor(outer="|||", inner=":::", fields=("time", "sql"))
        assert reader.extract_sql(LogEntry(message=message)) == "SELECT 1"
        assert message.count("|||") == 1

    def test_custom_glue(self, engine, debug):
        conn, recorder = debug
        conn.configure(outer_glue=" ## ", inner_glue="=")
        with engine.connect() as c:
            c.execute(text("SELECT 1"))
        reader = FieldExtractor(outer=" ## ", inner="=")
        assert reader.extract_sql(LogEntry(message=recorder.calls[0][0])) == "SELECT 1"

    def test_format_message(self, engine):
        conn = DebugConnection(engine)
        conn.configure(time_enabled=True, mem_enabled=True, method_enabled=True)
        message = conn.format_message(0.0021, "find", "SELECT 1", memory=1.25)
        assert message == "time:::0.0021|||mem:::1.25|||method:::find|||sql:::SELECT 1"
        conn.close()


class TestCounting:
    def test_counts_without_logger(self, engine):
        conn = DebugConnection(engine)
        with engine.connect() as c:
            c.execute(text("SELECT 1"))
            c.execute(text("SELECT 2"))
        assert conn.query_count == 2
        conn.close()

    def test_close_stops_listening(self, engine, debug):
        conn, recorder = debug
        conn.close()
        with engine.connect() as c:
            c.execute(text("SELECT 1"))
        assert conn.query_count == 0
        assert recorder.calls == []
        assert not conn.debug

    def test_use_debug_is_idempotent(self, engine):
        conn = DebugConnection(engine)
        conn.use_debug(True)
        with engine.connect() as c:
            c.execute(text("SELECT 1"))
        assert conn.query_count == 1
        conn.close()


class TestGlueInValues:
    def test_parameter_with_outer_glue(self, engine, debug, extractor):
        _, recorder = debug
        with engine.connect() as c:
            c.execute(text("SELECT :x"), {"x": "a|||b"})
        message = recorder.calls[0][0]
        assert message.count("|||") == 3
        sql = extractor.extract_sql(LogEntry(message=message))
        assert "a¦¦¦b" in sql

    def test_statement_with_outer_glue(self, engine):
        conn = DebugConnection(engine)
        conn.configure(time_enabled=True, mem_enabled=True, method_enabled=True)
        message = conn.format_message(0.5, "find", "SELECT 'x|||y'", memory=1.0)
        conn.close()
        assert message.count("|||") == 3
        assert message.endswith("sql:::SELECT 'x¦¦¦y'")


class TestFailedStatements:
    def test_no_state_left_on_pooled_connection(self, engine, debug):
        conn, recorder = debug
        with engine.connect() as c:
            for _ in range(5):
                with pytest.raises(OperationalError):
                    c.execute(text("SELECT * FROM nope"))
                c.rollback()
            leftovers = [key for key in c.connection.info if str(key).startswith("querybar")]
        assert leftovers == []
        assert conn.query_count == 0
        assert recorder.calls == []

    def test_timing_after_failure(self, engine, debug, extractor):
        _, recorder = debug
        with engine.connect() as c:
            with pytest.raises(OperationalError):
                c.execute(text("SELECT * FROM nope"))
            c.rollback()
            c.execute(text("SELECT 1"))
        elapsed = extractor.extract_time(LogEntry(message=recorder.calls[0][0]))
        assert 0 <= elapsed < 5
