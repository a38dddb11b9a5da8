"""Due-today digest for the oversight recipients."""

from datetime import date
from typing import Mapping, Optional, Sequence

from ..domain.models import ClassifiedCase
from ..logging import get_logger
from ..notifications.delivery import DeliveryClient
from ..notifications.models import (
    DeliveryError,
    NotificationTemplateError,
    ReauthorizationRequired,
)
from ..notifications.payloads import build_digest_context
from ..notifications.templates import TemplateRenderer
from .models import DigestResult

logger = get_logger(__name__, component="escalation")


class EscalationSummarizer:
    """Builds one digest of every department's due-today cases and sends it
    to each oversight address on its own.

    Nothing here writes to the ledger; a failed digest never affects the
    department notices already recorded.
    """

    def __init__(
        self,
        delivery: DeliveryClient,
        oversight_addresses: Sequence[str],
        renderer: Optional[TemplateRenderer] = None,
        sender_name: str = "",
    ):
        self.delivery = delivery
        self.oversight_addresses = list(oversight_addresses)
        self.renderer = renderer or TemplateRenderer()
        self.sender_name = sender_name

    def summarize(
        self,
        batches: Mapping[str, Sequence[ClassifiedCase]],
        today: date,
    ) -> DigestResult:
        """Send the digest for ``batches``; no-op when there are no cases."""
        total = sum(len(cases) for cases in batches.values())
        if total == 0:
            logger.debug("No due-today cases; digest not sent", extra={"event": "digest.skipped"})
            return DigestResult()

        if not self.oversight_addresses:
            logger.warning(
                "No oversight addresses configured; digest not sent",
                extra={"event": "digest.no_recipients", "total_cases": total},
            )
            return DigestResult(total_cases=total)

        context = build_digest_context(batches, today, self.sender_name)
        result = DigestResult(
            attempted=True,
            total_cases=context["total"],
            department_count=context["department_count"],
        )

        try:
            message = self.renderer.render("digest", context)
        except NotificationTemplateError as e:
            result.failed = {address: str(e) for address in self.oversight_addresses}
            return result

        for address in self.oversight_addresses:
            try:
                sent = self.delivery.send(
                    address, message.subject, message.html_body, message.text_body
                )
            except ReauthorizationRequired as e:
                result.reauthorization_required = True
                for remaining in self.oversight_addresses:
                    if remaining not in result.delivered:
                        result.failed[remaining] = str(e)
                break
            except DeliveryError as e:
                result.failed[address] = str(e)
                logger.error(
                    f"Digest delivery to {address} failed: {e}",
                    extra={"event": "digest.address.failed", "address": address},
                )
                continue
            result.delivered[address] = sent.message_id

        logger.info(
            f"Digest sent to {len(result.delivered)} of {len(self.oversight_addresses)} "
            f"oversight addresses",
            extra={
                "event": "digest.completed",
                "total_cases": result.total_cases,
                "department_count": result.department_count,
                "delivered": sorted(result.delivered),
                "failed": sorted(result.failed),
            },
        )
        return result
