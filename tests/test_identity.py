from __future__ import annotations

import pytest

from pyblaq.models import DeviceIdentity, format_mac


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("60:84:d8:aa:bb:cc", "60:84:D8:AA:BB:CC"),
        ("6084d8aabbcc", "60:84:D8:AA:BB:CC"),
        ("60-84-D8-AA-BB-CC", "60:84:D8:AA:BB:CC"),
        (" 60 84 d8 ", "60:84:D8"),
        ("aabbc", "AA:BB"),
        ("zz-yy", None),
        ("", None),
        (None, None),
    ],
)
def test_format_mac(raw: str | None, expected: str | None) -> None:
    assert format_mac(raw) == expected


def test_identity_completeness() -> None:
    assert not DeviceIdentity().is_complete
    assert not DeviceIdentity(friendly_name="GDO blaQ 6084d8").is_complete
    assert not DeviceIdentity(device_mac="60:84:D8:AA:BB:CC").is_complete
    assert DeviceIdentity(friendly_name="GDO blaQ 6084d8", device_mac="60:84:D8:AA:BB:CC").is_complete


def test_identity_model_and_serial_from_title() -> None:
    identity = DeviceIdentity(friendly_name="GDO blaQ 6084d8")
    assert identity.model == "blaQ"
    assert identity.serial_number == "6084d8"


def test_identity_model_and_serial_fallbacks() -> None:
    assert DeviceIdentity().model == "Unknown"
    assert DeviceIdentity().serial_number == "Unknown"
    bare = DeviceIdentity(friendly_name="Garage")
    assert bare.model == "Garage"
    assert bare.serial_number == "Garage"
