class MalformedLogMessage(ValueError):
    """A logged message does not match the configured field layout.

    Raised when the producer and the extractor disagree on delimiters or on
    which detail fields are enabled.
    """

    def __init__(self, message: str, reason: str):
        self.log_message = message
        self.reason = reason
        super().__init__(f"{reason}: {message!r}")
