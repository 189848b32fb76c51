from __future__ import annotations

import pytest

from featctl.domain.identifiers import id_number, is_local_id, is_synced_id, is_valid_id, next_id


@pytest.mark.parametrize(
    ("value", "valid"),
    [
        ("FT-000001", True),
        ("FT-123456", True),
        ("FT-LOCAL-login-flow", True),
        ("FT-LOCAL-a", True),
        ("FT-LOCAL-" + "a" * 64, True),
        ("FT-LOCAL-" + "a" * 65, False),
        ("FT-LOCAL-", False),
        ("FT-LOCAL-Upper", False),
        ("FT-12345", False),
        ("FT-1234567", False),
        ("FT-\u0661\u0662\u0663\u0664\u0665\u0666", False),
        ("FT-\uff10\uff10\uff10\uff10\uff10\uff11", False),
        ("ft-000001", False),
        ("FT-000001.yaml", False),
        ("", False),
    ],
)
def test_is_valid_id(value: str, valid: bool) -> None:
    assert is_valid_id(value) is valid


def test_id_forms_are_disjoint() -> None:
    assert is_synced_id("FT-000042") and not is_local_id("FT-000042")
    assert is_local_id("FT-LOCAL-x") and not is_synced_id("FT-LOCAL-x")


def test_id_number() -> None:
    assert id_number("FT-000042") == 42
    assert id_number("FT-LOCAL-42") is None


def test_next_id_on_empty_catalog() -> None:
    assert next_id([]) == "FT-000001"


def test_next_id_uses_maximum() -> None:
    assert next_id(["FT-000001", "FT-000005", "FT-000003"]) == "FT-000006"


def test_next_id_ignores_local_ids() -> None:
    assert next_id(["FT-000001", "FT-LOCAL-x"]) == "FT-000002"


def test_next_id_ignores_non_ascii_digits() -> None:
    arabic_indic = "FT-\u0661\u0662\u0663\u0664\u0665\u0666"

    assert id_number(arabic_indic) is None
    assert next_id(["FT-000002", arabic_indic]) == "FT-000003"
