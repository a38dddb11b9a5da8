"""Template rendering for email notifications using Jinja2.

Templates live in the ``email_templates`` directory of this package, one
subject/HTML/text triple per message kind:

- ``department``: one department's cases in one bucket
- ``digest``: due-today summary for the oversight recipients
"""

from typing import Dict

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError, select_autoescape

from ..logging import get_logger
from .models import NotificationTemplateError, RenderedMessage

logger = get_logger(__name__, component="templates")

MESSAGE_KINDS = ("department", "digest")


class TemplateRenderer:
    """Renders subject, HTML and plain text bodies for a message kind.

    Only the HTML bodies are escaped. Missing context variables raise
    instead of rendering as blanks.
    """

    def __init__(self, template_dir: str = "email_templates"):
        self.env = Environment(
            loader=PackageLoader("deadline_notifier.notifications", template_dir),
            autoescape=select_autoescape(enabled_extensions=("html.j2",), default=False),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render(self, kind: str, context: Dict) -> RenderedMessage:
        """Render the ``kind`` templates with ``context``.

        Raises:
            NotificationTemplateError: Unknown kind or rendering failure
        """
        if kind not in MESSAGE_KINDS:
            raise NotificationTemplateError(f"Unknown message kind: {kind}")

        try:
            subject = self.env.get_template(f"{kind}_subject.j2").render(context)
            html_body = self.env.get_template(f"{kind}_body.html.j2").render(context)
            text_body = self.env.get_template(f"{kind}_body.txt.j2").render(context)
        except TemplateError as e:
            error_msg = f"Template rendering failed for {kind}: {e}"
            logger.error(error_msg, exc_info=True, extra={"event": "templates.failed"})
            raise NotificationTemplateError(error_msg) from e

        return RenderedMessage(
            subject=" ".join(subject.split()),
            html_body=html_body,
            text_body=text_body,
        )
