# Overview: Registration-number allocator backed by the counters table.

"""
Registration Number Allocator

WHY: Delegates quote their registration number at the venue desk, so numbers
must be unique, human readable (AOA2026-0001) and never reused.

TWO PATHS share one counter row:
- Automatic: atomic increment of counters.seq, read back in the same
  transaction (allocate_registration_number).
- Manual (admin): scan forward from a requested start for an unused number,
  then raise the counter so the automatic path never re-issues it.

INVARIANT: counter.seq >= highest numeric suffix in use after either path.
The unique constraint on registrations.registration_number is the final
guard; a scan/insert race surfaces as IntegrityError to the caller.
"""

from __future__ import annotations

import re

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Registration, Counter
from .pricing_service import get_active_pricing_table


REGISTRATION_COUNTER = "registrationNumber"
NUMBER_PAD = 4
MAX_REGISTRATION_SEQ = 99999
DEFAULT_RANGE_START = 1
DEFAULT_RANGE_END = 14


class RegistrationNumberError(Exception):
    """Raised for invalid counter values or an exhausted number space."""
    pass


def _prefix() -> str:
    return get_active_pricing_table().registration_prefix


def format_registration_number(seq: int) -> str:
    return f"{_prefix()}{int(seq):0{NUMBER_PAD}d}"


def parse_registration_seq(registration_number) -> int | None:
    """Numeric suffix of a registration number, or None when it is not ours."""
    if not registration_number:
        return None
    match = re.match(rf"^{re.escape(_prefix())}(\d+)$", str(registration_number).strip())
    if not match:
        return None
    return int(match.group(1))


def max_used_seq() -> int:
    """Highest suffix currently assigned (0 when none)."""
    numbers = db.session.query(Registration.registration_number).filter(
        Registration.registration_number.like(f"{_prefix()}%")
    )
    highest = 0
    for (number,) in numbers:
        seq = parse_registration_seq(number)
        if seq is not None and seq > highest:
            highest = seq
    return highest


def _read_counter() -> int | None:
    return db.session.query(Counter.seq).filter_by(name=REGISTRATION_COUNTER).scalar()


def ensure_counter() -> int:
    """
    Make sure the counter row exists, seeded from the highest number in use.

    A concurrent seed insert loses on the unique name. Only its savepoint is
    rolled back; whatever the caller already flushed stays in the transaction.
    """
    current = _read_counter()
    if current is not None:
        return current

    _seed_counter(REGISTRATION_COUNTER, max_used_seq())
    return _read_counter()


def _seed_counter(name: str, seq: int) -> bool:
    """Insert a counter row inside a savepoint. Returns False when another writer seeded it first."""
    try:
        with db.session.begin_nested():
            db.session.add(Counter(name=name, seq=seq))
    except IntegrityError:
        current_app.logger.info("Counter %s already seeded by a concurrent writer", name)
        return False
    return True


def increment_counter(name: str) -> int:
    """
    Atomically increment a named counter and return the new value.

    A missing row is created at 1; losing that insert race falls back to the
    increment. Runs inside the caller's transaction and never rolls it back,
    so retries belong to the caller's unit of work.
    """
    stmt = update(Counter).where(Counter.name == name).values(seq=Counter.seq + 1)
    result = db.session.execute(stmt)
    if not result.rowcount:
        if _seed_counter(name, 1):
            return 1
        db.session.execute(stmt)
    db.session.flush()
    return db.session.query(Counter.seq).filter_by(name=name).scalar()


def allocate_registration_number() -> str:
    """Atomically take the next number from the registration counter."""
    ensure_counter()
    return format_registration_number(increment_counter(REGISTRATION_COUNTER))


def assign_registration_number(registration: Registration) -> str:
    """Issue a number to a registration that has none; an existing number is kept."""
    if not registration.registration_number:
        registration.registration_number = allocate_registration_number()
    return registration.registration_number


def _is_used(registration_number: str) -> bool:
    return db.session.query(
        Registration.query.filter_by(registration_number=registration_number).exists()
    ).scalar()


def find_next_available(start_seq: int | None = None) -> tuple[int, str]:
    """
    Scan forward from start_seq (default: counter + 1) for an unused number.

    Raises RegistrationNumberError when nothing is free below MAX_REGISTRATION_SEQ.
    """
    if start_seq is None:
        start_seq = (ensure_counter() or 0) + 1
    seq = int(start_seq)
    if seq < 1:
        raise RegistrationNumberError("Registration number must be a positive integer")

    while seq <= MAX_REGISTRATION_SEQ:
        candidate = format_registration_number(seq)
        if not _is_used(candidate):
            return seq, candidate
        seq += 1
    raise RegistrationNumberError("No registration numbers available")


def raise_counter_to(seq: int) -> int:
    """Move the counter up to seq. Never lowers it."""
    ensure_counter()
    db.session.execute(
        update(Counter)
        .where(Counter.name == REGISTRATION_COUNTER, Counter.seq < int(seq))
        .values(seq=int(seq))
    )
    db.session.flush()
    return _read_counter()


def get_counter_info() -> dict:
    counter = ensure_counter() or 0
    max_used = max_used_seq()
    next_seq = max(counter, max_used) + 1
    return {
        "counter": counter,
        "max_used": max_used,
        "suggested_next": next_seq,
        "suggested_next_number": format_registration_number(next_seq),
        "prefix": _prefix(),
    }


def set_counter(seq) -> dict:
    """
    Admin override of the counter value.

    Rejects negatives and values below the highest number in use, since the
    automatic path would then re-issue an existing number.
    """
    try:
        value = int(seq)
    except (TypeError, ValueError):
        raise RegistrationNumberError("Counter value must be an integer") from None
    if value < 0:
        raise RegistrationNumberError("Counter value cannot be negative")
    max_used = max_used_seq()
    if value < max_used:
        raise RegistrationNumberError(
            f"Counter cannot be set below the highest used number ({max_used})"
        )

    ensure_counter()
    db.session.execute(
        update(Counter).where(Counter.name == REGISTRATION_COUNTER).values(seq=value)
    )
    db.session.commit()
    return get_counter_info()


def availability_in_range(start=None, end=None) -> dict:
    """Used and free numbers in [start, end] plus the next free one after the range."""
    start = DEFAULT_RANGE_START if start in (None, "") else int(start)
    end = DEFAULT_RANGE_END if end in (None, "") else int(end)
    if start < 1 or end < start:
        raise RegistrationNumberError("Invalid range")
    if end > MAX_REGISTRATION_SEQ:
        raise RegistrationNumberError(f"Range end cannot exceed {MAX_REGISTRATION_SEQ}")

    used_seqs = set()
    for (number,) in db.session.query(Registration.registration_number):
        seq = parse_registration_seq(number)
        if seq is not None and start <= seq <= end:
            used_seqs.add(seq)

    available = [s for s in range(start, end + 1) if s not in used_seqs]
    next_after = None
    if end < MAX_REGISTRATION_SEQ:
        try:
            next_after = find_next_available(end + 1)[1]
        except RegistrationNumberError:
            next_after = None

    return {
        "start": start,
        "end": end,
        "used": [format_registration_number(s) for s in sorted(used_seqs)],
        "available": [format_registration_number(s) for s in available],
        "next_in_range": format_registration_number(available[0]) if available else None,
        "next_after_range": next_after,
    }
