"""
Human-readable queue ticket identifiers.

Tickets look like ``QCE241019-4821``: ``Q``, the first letter of the
hospital and of the department, the admission date and a random number.
The random part comes from :mod:`secrets` so concurrent admissions in the
same partition are unlikely to race to the same id; the caller's set of
existing ids settles the rest.
"""
from __future__ import annotations

import logging
import secrets
from datetime import date
from typing import Callable, Collection, Optional

from triage.exceptions import GenerationExhausted

logger = logging.getLogger(__name__)

# (digits, attempts): the random space widens once the narrow one keeps colliding.
ATTEMPT_PLAN = ((4, 5), (6, 5))


def _code(name: str) -> str:
    for ch in name or '':
        if ch.isascii() and ch.isalnum():
            return ch.upper()
    return 'X'


def ticket_prefix(hospital: str, department: str, today: date) -> str:
    return f"Q{_code(hospital)}{_code(department)}{today:%y%m%d}"


def _random_digits(digits: int) -> str:
    low = 10 ** (digits - 1)
    return str(low + secrets.randbelow(9 * low))


def generate(hospital: str, department: str, existing_ids: Collection[str], today: date,
             *, randomizer: Optional[Callable[[int], str]] = None) -> str:
    """Return a ticket id not present in ``existing_ids``.

    Raises :class:`~triage.exceptions.GenerationExhausted` when every attempt
    collides; a duplicate is never returned.
    """
    randomizer = randomizer or _random_digits
    prefix = ticket_prefix(hospital, department, today)
    for digits, attempts in ATTEMPT_PLAN:
        for _ in range(attempts):
            candidate = f"{prefix}-{randomizer(digits)}"
            if candidate not in existing_ids:
                return candidate
        logger.warning("ticket id space %s-<%d digits> exhausted, widening", prefix, digits)
    raise GenerationExhausted(f"could not generate a unique ticket id for {hospital}/{department}")
