import pytest

from modbridge.crc import add_crc, calc_crc, calculate_interval, valid_crc


def test_empty_data_gives_initial_value():
    assert calc_crc(b"") == 0xFFFF


def test_standard_check_value():
    assert calc_crc(b"123456789") == 0x4B37


def test_known_request_frame():
    frame = add_crc(bytes.fromhex("01 03 00 00 00 0A"))
    assert frame == bytes.fromhex("01 03 00 00 00 0A C5 CD")


def test_accepts_list_of_ints():
    assert calc_crc([0x01, 0x03, 0x00, 0x00]) == calc_crc(b"\x01\x03\x00\x00")


@pytest.mark.parametrize(
    "payload",
    [b"\x01", b"\x01\x03\x08\x00\x00\x11\x11\x22\x22\x33\x33", bytes(range(200))],
)
def test_add_crc_round_trip(payload):
    framed = add_crc(payload)
    assert framed[: len(payload)] == payload
    assert len(framed) == len(payload) + 2
    assert valid_crc(framed) is True


@pytest.mark.parametrize("payload", [b"\x01\x07", b"\x02\x03\x08\xc9\xc8\xc7\xc6"])
def test_residue_of_framed_message_is_zero(payload):
    assert calc_crc(add_crc(payload)) == 0


def test_corrupted_frame_is_invalid():
    framed = bytearray(add_crc(b"\x01\x06\x00\x10\xbe\xef"))
    framed[2] ^= 0x01
    assert valid_crc(framed) is False


def test_valid_crc_with_explicit_value():
    payload = b"\x01\x03\x00\x10\x00\x01"
    crc = calc_crc(payload)
    assert valid_crc(payload, crc) is True
    assert valid_crc(payload, crc ^ 0x0100) is False


def test_valid_crc_too_short():
    with pytest.raises(ValueError):
        valid_crc(b"\x01")


def test_add_crc_does_not_modify_input():
    message = bytearray(b"\x01\x07")
    add_crc(message)
    assert message == bytearray(b"\x01\x07")


def test_interval_lower_limit_at_high_baud():
    assert calculate_interval(4000000) == 1750


def test_interval_overwrite_takes_precedence_when_larger():
    assert calculate_interval(4000000, 20000) == 20000


def test_interval_overwrite_ignored_when_smaller():
    assert calculate_interval(4000000, 100) == calculate_interval(4000000)


def test_interval_never_below_minimum():
    for baud in (9600, 19200, 115200, 1000000):
        assert calculate_interval(baud) >= 1750


def test_interval_decreases_with_baud_rate():
    assert calculate_interval(1200) > calculate_interval(9600) > calculate_interval(19200)


def test_interval_rejects_zero_baud():
    with pytest.raises(ValueError):
        calculate_interval(0)