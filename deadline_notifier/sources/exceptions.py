"""Exceptions raised by case sources and department directories."""


class SourceError(Exception):
    """Reading from the case store or the department directory failed.

    Attributes:
        source: Which store failed (``cases`` or ``directory``)
    """

    def __init__(self, message: str, source: str = "cases"):
        self.message = message
        self.source = source
        super().__init__(message)
