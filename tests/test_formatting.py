import datetime
import math

from tagwatch.core.formatting import (
    NULL_TEXT, TypeFamily, duration_text, float_text, format_value, resolve_type
)


def test_word_zero_bitfield():
    assert format_value(0, "WORD") == "(0) Hex: 00_00 | Dec: 0000_0000_0000_0000"


def test_time_minutes_seconds_millis():
    assert format_value(61234, "TIME") == "T#1M 1S 234MS"


def test_type_tag_is_case_insensitive():
    assert format_value(0, "word") == format_value(0, "WORD")
    assert format_value(61234, "Time") == "T#1M 1S 234MS"


def test_bitfield_widths():
    assert format_value(5, "BYTE") == "(5) Hex: 05 | Dec: 0000_0101"
    assert format_value(0xDEADBEEF, "DWORD") == (
        "(3735928559) Hex: de_ad_be_ef | Dec: 1101_1110_1010_1101_1011_1110_1110_1111"
    )
    lword = format_value(1, "LWORD")
    assert lword.startswith("(1) Hex: 00_00_00_00_00_00_00_01 | Dec: ")
    assert lword.endswith("0000_0001")


def test_bitfield_out_of_range_falls_back():
    assert format_value(256, "BYTE") == "256"
    assert format_value(-1, "WORD") == "-1"


def test_duration_units():
    assert duration_text(500) == "T#500MS"
    assert duration_text(1000) == "T#1S 0MS"
    assert duration_text(3600000) == "T#1H 0M 0S 0MS"
    assert duration_text(90061001) == "T#1D 1H 1M 1S 1MS"
    assert duration_text(0) == "T#0MS"
    assert duration_text(-61234) == "T#-1M 1S 234MS"


def test_ltime_is_nanoseconds():
    assert format_value(61234 * 1_000_000, "LTIME") == "T#1M 1S 234MS"


def test_time_from_timedelta():
    assert format_value(datetime.timedelta(seconds=2, milliseconds=5), "TIME") == "T#2S 5MS"


def test_boolean():
    assert format_value(True, "BOOL") == "True"
    assert format_value(0, "BOOL") == "False"
    assert format_value("true", "BOOLEAN") == "True"
    assert format_value("0", "BOOL") == "False"
    # not a boolean at all: passed through
    assert format_value("maybe", "BOOL") == "maybe"


def test_integers():
    assert format_value(-5, "INT") == "-5"
    assert format_value("42", "UDINT") == "42"
    assert format_value(7.0, "DINT") == "7"
    assert format_value(7.5, "DINT") == "7.5"


def test_float_shortest_round_trip():
    assert format_value(21.5, "REAL") == "21.5"
    assert format_value(0.1, "REAL") == "0.1"
    assert format_value(0.1, "LREAL") == "0.1"
    assert format_value(100.0, "LREAL") == "100"
    assert format_value(1e20, "LREAL") == "1E+20"
    assert format_value(1.5e-7, "LREAL") == "1.5E-07"


def test_float_special_values():
    assert float_text(math.nan) == "NaN"
    assert float_text(math.inf) == "Infinity"
    assert float_text(-math.inf, 32) == "-Infinity"
    assert format_value("21.50", "LREAL") == "21.5"


def test_dates():
    assert format_value(0, "DATE") == "D#1970-01-01"
    assert format_value(1714125600, "DT") == "DT#2024-04-26 10:00:00"
    assert format_value(1714125600, "DATE_AND_TIME") == "DT#2024-04-26 10:00:00"
    assert format_value(36000000, "TOD") == "TOD#10:00:00"
    assert format_value(datetime.date(2024, 4, 26), "DATE") == "D#2024-04-26"
    assert format_value(datetime.time(8, 30, 5), "TIME_OF_DAY") == "TOD#08:30:05"


def test_wstring_buffer_cut_at_nul():
    buffer = "Hi".encode("utf-16-le") + b"\x00" * 6
    assert format_value(buffer, "WSTRING(4)") == "Hi"
    assert format_value(list(buffer), "WSTRING", 4) == "Hi"


def test_string_pass_through():
    assert format_value("21.5", "STRING") == "21.5"
    assert format_value(b"abc\x00garbage", "STRING(80)") == "abc"
    assert format_value(b"21.5") == "21.5"
    assert format_value("payload") == "payload"


def test_unknown_type_passes_through():
    assert format_value(5, "ST_Custom") == "5"
    assert format_value("x", None) == "x"


def test_null_values():
    assert format_value(None, "WORD") == NULL_TEXT
    assert format_value(None, "TIME") == NULL_TEXT
    assert format_value(None) == ""


def test_resolve_type_sizes():
    assert resolve_type("STRING(40)") == resolve_type("string", 40)
    info = resolve_type("WSTRING")
    assert info.family == TypeFamily.WSTRING
    assert info.size == 80
    assert resolve_type("lword").width == 64
    assert resolve_type("").family == TypeFamily.FALLBACK
