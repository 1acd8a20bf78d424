"""
Shared fixtures for the tithebook test suite.
"""

import io

import pytest
from PIL import Image

from tithebook.models import BatchFile, ExtractedEntry, RosterMember
from tithebook.storage import MemoryStore


@pytest.fixture
def roster():
    """A small assembly master list."""
    return [
        RosterMember(membership_id="TAC001", surname="MENSAH", first_name="KOFI", title="ELDER"),
        RosterMember(membership_id="TAC002", surname="MENSAH", first_name="AMA", other_names="SERWAA"),
        RosterMember(
            membership_id="TAC003",
            surname="OWUSU",
            first_name="KWABENA",
            other_names="JOSEPH",
            old_membership_id="OLD-77",
        ),
        RosterMember(membership_id="TAC004", surname="BOATENG", first_name="ADWOA"),
        RosterMember(membership_id="TAC005", surname="ASANTE", first_name="YAW", other_names="PETER"),
    ]


@pytest.fixture
def memory_store():
    return MemoryStore()


def make_entries(rows):
    """(sequence_number, name, amount[, confidence]) tuples -> ExtractedEntry list."""
    entries = []
    for row in rows:
        seq, name, amount = row[:3]
        confidence = row[3] if len(row) > 3 else 0.9
        entries.append(ExtractedEntry(
            sequence_number=seq,
            raw_name=name,
            amount=amount,
            confidence=confidence,
        ))
    return entries


def make_image(width=100, height=100, fmt="PNG") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=(240, 240, 230)).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def image_file():
    def _make(name="page.png", width=100, height=100, fmt="PNG", mime_type="image/png"):
        return BatchFile(name=name, content=make_image(width, height, fmt), mime_type=mime_type)
    return _make
