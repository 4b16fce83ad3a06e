# blebridge/interfaces/reading_sink.py
from typing import Protocol

from blebridge.model.reading import Reading


class ReadingSink(Protocol):
    """
    Downstream destination for readings.

    deliver() raises SinkUnavailableError for transient failures and
    SinkRejectedError when the reading can never be accepted.
    """
    def deliver(self, reading: Reading) -> None: ...
    def close(self) -> None: ...
