"""
Diagnostic and prescriptive vocabulary that explanations must never use

Explanations describe what the data shows and which check is due. They
never name a condition as present or tell the user how to treat it.
"""

import re
from typing import List, Pattern, Sequence

DENYLIST = (
    # diagnosis
    "diagnosed",
    "diagnosis",
    "diagnose",
    "you have",
    "you are suffering",
    "positive for",
    "confirms",
    "confirmed case",
    # prescription and treatment
    "prescribe",
    "prescription for",
    "dosage",
    "your dose",
    "increase the dose",
    "start taking",
    "stop taking",
    "treatment plan",
    "treat your",
    "cure",
    "medication for",
)


def compile_denylist(terms: Sequence[str] = DENYLIST) -> Pattern:
    """Case-insensitive whole-word pattern for the given phrases"""
    alternatives = sorted((re.escape(t) for t in terms), key=len, reverse=True)
    return re.compile(r"\b(?:" + "|".join(alternatives) + r")\b", re.IGNORECASE)


_PATTERN = compile_denylist()


def find_denied_terms(text: str, pattern: Pattern = _PATTERN) -> List[str]:
    return sorted({m.group(0).lower() for m in pattern.finditer(text)})
