from datetime import date

import pytest

from src.utils.parse_utils import month_bucket, parse_currency, parse_date, parse_int


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("$16,174.00", 16174.0),
        ("  $ 80 ", 80.0),
        ("€ 1,234.00", 1234.0),
        ("1200", 1200.0),
        (15.5, 15.5),
        ("(1,200.50)", -1200.5),
        ("-$30", -30.0),
    ],
)
def test_parse_currency(raw, expected):
    assert parse_currency(raw) == pytest.approx(expected)


@pytest.mark.parametrize("raw", ["", None, "n/a", "$", "12abc", "1.2.3"])
def test_parse_currency_rejects_garbage(raw):
    with pytest.raises(ValueError):
        parse_currency(raw)


def test_parse_date_is_day_first():
    assert parse_date("13/01/2021") == date(2021, 1, 13)
    assert parse_date("02/01/2021") == date(2021, 1, 2)
    assert parse_date("2021-03-04") == date(2021, 3, 4)


def test_parse_date_never_reads_month_first():
    with pytest.raises(ValueError):
        parse_date("01/13/2021")


def test_parse_date_custom_formats():
    assert parse_date("2021/07/09", ["%Y/%m/%d"]) == date(2021, 7, 9)
    with pytest.raises(ValueError):
        parse_date("09/07/2021", ["%Y/%m/%d"])


def test_parse_int():
    assert parse_int("1,024") == 1024
    assert parse_int("12.0") == 12
    assert parse_int(7) == 7
    with pytest.raises(ValueError):
        parse_int("12.5")
    with pytest.raises(ValueError):
        parse_int("")


def test_month_bucket():
    assert month_bucket(date(2021, 1, 13)) == "2021-01"
    assert month_bucket(date(2021, 12, 1)) == "2021-12"
