"""Configuration errors raised by the YAML and environment layers."""

from typing import List, Optional


class ConfigurationError(Exception):
    """The notifier cannot start with the settings it was given.

    ``source`` names the layer at fault (a YAML path or ``environment``).
    Every problem found is kept in ``errors`` so an operator can fix the
    file in one pass instead of rerunning after each message.
    """

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        suggestions: Optional[List[str]] = None,
        source: Optional[str] = None,
    ):
        """
        Args:
            message: Summary line
            errors: Individual problems, one per field or variable
            suggestions: Remedies shown under the errors
            source: Config file path or ``environment``
        """
        self.message = message
        self.errors = errors or []
        self.suggestions = suggestions or []
        self.source = source
        super().__init__(self._render())

    def _render(self) -> str:
        head = f"[{self.source}] {self.message}" if self.source else self.message
        lines = [head]

        if self.errors:
            lines.append("\nValidation Errors:")
            lines.extend(f"  {n}. {error}" for n, error in enumerate(self.errors, 1))

        if self.suggestions:
            lines.append("\nSuggestions:")
            lines.extend(f"  - {suggestion}" for suggestion in self.suggestions)

        return "\n".join(lines)
