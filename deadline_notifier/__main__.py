"""Allow ``python -m deadline_notifier``."""

from .main import run

run()
