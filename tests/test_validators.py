import pytest

from ogwini_portal.app.services import validators


@pytest.mark.parametrize(
    "value,expected",
    [
        ("9001015009087", True),
        ("900101500908", False),
        ("90010150090871", False),
        ("90010150090a7", False),
        ("", False),
        (None, False),
    ],
)
def test_id_number(value, expected):
    assert validators.is_valid_id_number(value) is expected


@pytest.mark.parametrize(
    "value,expected",
    [
        ("0821234567", True),
        ("082 123 4567", True),
        ("+27821234567", True),
        ("27821234567", False),
        ("082123456", False),
        ("08212345678", False),
        ("082-123-4567", False),
    ],
)
def test_phone(value, expected):
    assert validators.is_valid_phone(value) is expected


def test_normalize_phone_strips_whitespace():
    assert validators.normalize_phone(" 082 123\t4567 ") == "0821234567"
    assert validators.normalize_phone(None) == ""


@pytest.mark.parametrize(
    "value,expected",
    [
        ("zanele@gmail.com", True),
        ("Zanele.Dube@GMAIL.COM", True),
        ("zanele@yahoo.com", False),
        ("@gmail.com", False),
        ("zan ele@gmail.com", False),
        ("zanele@gmail.com.za", False),
    ],
)
def test_school_email(value, expected):
    assert validators.is_valid_school_email(value) is expected


def test_general_email():
    assert validators.is_valid_email("parent@example.co.za")
    assert not validators.is_valid_email("parent@example")


def test_password_rules():
    assert validators.password_problem("abc1!") == "Password must be at least 8 characters."
    assert validators.password_problem("abcdefgh!") == "Password must contain at least one number."
    assert "symbol" in validators.password_problem("abcdefgh1")
    assert validators.password_problem("abcdefg!1") is None
    assert validators.is_strong_password("Secure@123")


def test_date():
    assert validators.is_valid_date("2008-02-29")
    assert not validators.is_valid_date("2007-02-29")
    assert not validators.is_valid_date("01/02/2008")
