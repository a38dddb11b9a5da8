"""Descriptive case fields: direct column first, then the nested payload."""

from typing import Any, Optional

from ..domain.models import CaseSnapshot
from .dates import resolve_completion_date

MISSING = "N/A"

CLOSED_STATUS_TERMS = (
    "concluída",
    "concluida",
    "encerrada",
    "finalizada",
    "resolvida",
    "arquivamento",
)


def _first_text(*candidates: Any) -> Optional[str]:
    for candidate in candidates:
        if candidate is None:
            continue
        text = str(candidate).strip()
        if text:
            return text
    return None


def resolve_protocol(case: CaseSnapshot) -> str:
    return _first_text(case.protocol, case.payload.get("protocolo")) or MISSING


def resolve_manifestation_type(case: CaseSnapshot) -> str:
    return (
        _first_text(case.manifestation_type, case.payload.get("tipo_de_manifestacao"))
        or MISSING
    )


def resolve_department(case: CaseSnapshot) -> str:
    return _first_text(case.department, case.payload.get("orgaos")) or MISSING


def resolve_subject(case: CaseSnapshot) -> str:
    return _first_text(case.subject, case.payload.get("assunto")) or MISSING


def resolve_status(case: CaseSnapshot) -> str:
    """Status text, falling back to the secondary demand status."""
    return _first_text(case.status, case.status_demand) or ""


def is_closed(case: CaseSnapshot) -> bool:
    """A case is closed once it has a completion date or a closing status.

    Example:
        >>> is_closed(CaseSnapshot(status="Concluída"))
        True
    """
    if resolve_completion_date(case) is not None:
        return True

    status = resolve_status(case).lower()
    return any(term in status for term in CLOSED_STATUS_TERMS)
