import pytest

from contact_intake.identity import client_identity


def test_first_forwarded_hop_wins():
    headers = {"x-forwarded-for": " 203.0.113.7 , 10.0.0.2, 10.0.0.1", "x-real-ip": "10.0.0.9"}
    assert client_identity(headers) == "203.0.113.7"


def test_real_ip_used_without_forwarded_for():
    assert client_identity({"x-real-ip": "198.51.100.20"}) == "198.51.100.20"


@pytest.mark.parametrize("forwarded", ["", " ", ", 10.0.0.1"])
def test_empty_forwarded_for_falls_through(forwarded):
    headers = {"x-forwarded-for": forwarded, "x-real-ip": "198.51.100.20"}
    assert client_identity(headers) == "198.51.100.20"


def test_unknown_when_no_header_is_usable():
    assert client_identity({}) == "unknown"
    assert client_identity({"x-real-ip": "  "}) == "unknown"


def test_custom_fallback():
    assert client_identity({}, fallback="peer:127.0.0.1") == "peer:127.0.0.1"
