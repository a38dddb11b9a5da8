"""Template context builders for department notices and the oversight digest."""

from datetime import date
from typing import Dict, List, Mapping, Sequence

from ..domain.models import Bucket, ClassifiedCase
from ..utils.timestamps import format_br_date

BUCKET_SUBJECT_TAGS: Dict[Bucket, str] = {
    Bucket.DUE_IN_15: "[15 DIAS]",
    Bucket.DUE_TODAY: "[VENCIDO HOJE]",
    Bucket.OVERDUE_60: "[60+ DIAS VENCIDO]",
}

BUCKET_HEADLINES: Dict[Bucket, str] = {
    Bucket.DUE_IN_15: "Protocolo(s) vencendo em 15 dias",
    Bucket.DUE_TODAY: "Manifestação(ões) com prazo vencendo hoje",
    Bucket.OVERDUE_60: "Manifestação(ões) com prazo extrapolado há 60 dias ou mais",
}


def _case_row(case: ClassifiedCase) -> Dict:
    return {
        "protocol": case.protocol,
        "subject": case.subject,
        "manifestation_type": case.manifestation_type,
        "created_on": format_br_date(case.creation_date),
        "due_on": format_br_date(case.due_date),
        "sla_days": case.sla_days,
        "days_remaining": case.days_remaining,
        "days_overdue": max(0, -case.days_remaining),
    }


def build_department_context(
    bucket: Bucket,
    department: str,
    cases: Sequence[ClassifiedCase],
    today: date,
    sender_name: str,
) -> Dict:
    """Context for one department's notice in one bucket.

    Cases are listed by due date, oldest first, then by protocol.
    """
    ordered = sorted(cases, key=lambda c: (c.due_date, c.protocol))
    return {
        "bucket": bucket.value,
        "subject_tag": BUCKET_SUBJECT_TAGS[bucket],
        "headline": BUCKET_HEADLINES[bucket],
        "department": department,
        "cases": [_case_row(case) for case in ordered],
        "total": len(ordered),
        "today": format_br_date(today),
        "sender_name": sender_name,
    }


def build_digest_context(
    batches: Mapping[str, Sequence[ClassifiedCase]],
    today: date,
    sender_name: str,
) -> Dict:
    """Context for the cross-department due-today digest.

    Departments are ordered by case count (descending), then by name.
    """
    departments: List[Dict] = []
    for department, cases in batches.items():
        if not cases:
            continue
        ordered = sorted(cases, key=lambda c: c.protocol)
        departments.append(
            {
                "department": department,
                "total": len(ordered),
                "cases": [_case_row(case) for case in ordered],
            }
        )

    departments.sort(key=lambda d: (-d["total"], d["department"]))

    return {
        "today": format_br_date(today),
        "total": sum(d["total"] for d in departments),
        "department_count": len(departments),
        "departments": departments,
        "sender_name": sender_name,
    }
