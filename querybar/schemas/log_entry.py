import enum
from typing import Optional

from pydantic import BaseModel


class Severity(enum.IntEnum):
    """Syslog ordering, lower is more severe."""
    EMERGENCY = 0
    ALERT = 1
    CRITICAL = 2
    ERROR = 3
    WARNING = 4
    NOTICE = 5
    INFO = 6
    DEBUG = 7


class SourceLocation(BaseModel):
    file: str
    line: int

    model_config = {"frozen": True}


class LogEntry(BaseModel):
    """One captured logger call."""
    severity: Optional[Severity] = None
    message: str
    source: Optional[SourceLocation] = None

    model_config = {"frozen": True}
