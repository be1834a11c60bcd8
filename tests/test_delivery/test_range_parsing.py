# tests/test_delivery/test_range_parsing.py

import pytest

from app.core.exceptions import RangeNotSatisfiableException
from app.services.delivery import ByteRange, parse_range

SIZE = 1000


@pytest.mark.parametrize(
    "header,expected",
    [
        ("bytes=0-99", ByteRange(0, 99)),
        ("bytes=100-199", ByteRange(100, 199)),
        ("bytes=500-", ByteRange(500, 999)),
        ("bytes=900-5000", ByteRange(900, 999)),
        ("bytes=-100", ByteRange(900, 999)),
        ("bytes=-5000", ByteRange(0, 999)),
        ("bytes=999-999", ByteRange(999, 999)),
        ("BYTES=0-0", ByteRange(0, 0)),
        ("bytes=0-9, 20-29", ByteRange(0, 9)),
    ],
)
def test_satisfiable_ranges(header, expected):
    assert parse_range(header, SIZE) == expected


@pytest.mark.parametrize(
    "header",
    [
        None, "", "items=0-10", "bytes=", "bytes=abc-def", "bytes=10", "bytes=200-100", "bytes=-x",
        # latin-1 decoded header bytes: superscript and other non-ASCII digits
        "bytes=\xb2-", "bytes=-\xb2", "bytes=0-\xb9", "bytes=١٢-",
    ],
)
def test_unusable_headers_mean_whole_file(header):
    assert parse_range(header, SIZE) is None


@pytest.mark.parametrize("header", ["bytes=1000-", "bytes=1000-1100", "bytes=-0"])
def test_unsatisfiable_ranges(header):
    with pytest.raises(RangeNotSatisfiableException) as exc:
        parse_range(header, SIZE)
    assert exc.value.status_code == 416
    assert exc.value.headers["Content-Range"] == f"bytes */{SIZE}"


def test_any_range_on_empty_file_is_unsatisfiable():
    with pytest.raises(RangeNotSatisfiableException):
        parse_range("bytes=0-", 0)


def test_byte_range_helpers():
    r = ByteRange(100, 199)
    assert r.length == 100
    assert r.content_range(4096) == "bytes 100-199/4096"
