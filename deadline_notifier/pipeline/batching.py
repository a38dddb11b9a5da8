"""Grouping of eligible cases into per-department batches."""

from collections import defaultdict
from typing import Dict, Iterable, List

from ..domain.models import ClassifiedCase


def group_by_department(cases: Iterable[ClassifiedCase]) -> Dict[str, List[ClassifiedCase]]:
    """Group cases by owning department name.

    Callers pass only cases not yet notified for the bucket. Order within
    and across groups is not significant.
    """
    batches: Dict[str, List[ClassifiedCase]] = defaultdict(list)
    for case in cases:
        batches[case.department].append(case)
    return dict(batches)
