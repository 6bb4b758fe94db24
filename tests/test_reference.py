import re
from datetime import datetime, timezone

import pytest

from app.core.reference import REFERENCE_ALPHABET, generate_reference_number, unique_reference_number


def test_reference_format():
    ref = generate_reference_number("SR", now=datetime(2026, 3, 9, 23, 59, tzinfo=timezone.utc))

    assert re.fullmatch(r"SR-20260309-[A-Z2-9]{4}", ref)
    assert all(c in REFERENCE_ALPHABET for c in ref.split("-")[-1])


def test_unique_reference_retries_on_collision():
    seen = []

    def exists(ref):
        seen.append(ref)
        return len(seen) < 3

    ref = unique_reference_number("INV", exists)

    assert ref == seen[-1]
    assert len(seen) == 3


def test_unique_reference_gives_up():
    with pytest.raises(RuntimeError):
        unique_reference_number("SR", lambda ref: True)
