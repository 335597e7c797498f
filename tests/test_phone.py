import pytest

from bottlescan.services.errors import InvalidPhone
from bottlescan.services.phone import normalize_phone, provider_phone


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("+91 98765-43210", "+919876543210"),
        ("+44 (20) 7946.0958", "+442079460958"),
        ("0044 20 7946 0958", "+442079460958"),
        ("9876543210", "+919876543210"),
        ("09876543210", "+919876543210"),
    ],
)
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


def test_normalize_phone_custom_country_code():
    assert normalize_phone("2079460958", country_code="44") == "+442079460958"


@pytest.mark.parametrize("raw", ["", None, "+12", "+1234567890123456", "98765abc10", "+91 98765 4321x"])
def test_normalize_phone_rejects_garbage(raw):
    with pytest.raises(InvalidPhone):
        normalize_phone(raw)


def test_provider_phone_strips_plus():
    assert provider_phone("+919876543210") == "919876543210"
