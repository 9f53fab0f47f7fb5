"""
Cooperative cancellation for enrichment runs.
"""


class CancellationToken:
    """
    Flag shared between the stop handler (writer) and a worker (reader).

    Workers check it only between contacts, so an in-flight provider call
    always completes. One token per run; never reset.
    """

    __slots__ = ("_cancelled", "reason")

    def __init__(self):
        self._cancelled = False
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "stopped") -> None:
        if not self._cancelled:
            self._cancelled = True
            self.reason = reason

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled})"
