"""
Unit tests for sentinel, parity and LRC validated track parsing.
"""
from __future__ import annotations

import pytest

from core.track_parser import check_parity, decode_all, decode_char, find_end_sentinel, parse_track
from shared.errors import ConfigurationError
from shared.models import ABA, IATA, DecodedTrack, EncodingDescriptor, Orientation, Parity
from test.fixtures.signal_generators import char_frame, encode_track


class TestCharacters:
    def test_even_parity_default(self):
        assert check_parity("11000") is True
        assert check_parity("10000") is False
        assert check_parity("00000") is True

    def test_odd_parity(self):
        assert check_parity("11010", Parity.ODD) is True
        assert check_parity("11000", Parity.ODD) is False

    def test_builtin_sentinels_have_odd_parity(self):
        for encoding in (ABA, IATA):
            assert check_parity(encoding.start_sentinel, encoding.parity)
            assert check_parity(encoding.end_sentinel, encoding.parity)

    def test_decode_char_little_endian(self):
        assert decode_char("11010") == ";"
        assert decode_char("11111") == "?"
        assert decode_char("00001") == "0"
        assert decode_char("10000") == "1"
        assert decode_char("1010001") == "5"


class TestEndSentinel:
    def test_found_frame_aligned(self):
        bits = "11010" + "10000" + "11111"
        assert find_end_sentinel(bits, 0, ABA) == 10

    def test_misaligned_end_is_ignored(self):
        bits = "11010" + "00" + "11111" + "000"
        assert find_end_sentinel(bits, 0, ABA) == -1


class TestParseTrack:
    def test_valid_aba_track(self):
        bits = encode_track("123", ABA, leading_zeros=12, trailing_zeros=9)
        track = parse_track(bits, ABA)
        assert track.ok
        assert track.characters == ";123?"
        assert track.orientation is Orientation.CAPTURED

    def test_valid_iata_track(self):
        bits = encode_track("AB", IATA, leading_zeros=20, trailing_zeros=20)
        track = parse_track(bits, IATA)
        assert track.ok
        assert track.characters == "5ABO"

    def test_no_start_sentinel(self):
        track = parse_track("0" * 40, ABA)
        assert track.no_data
        assert track.describe() == "no data"

    def test_no_end_sentinel(self):
        track = parse_track("000" + "11010" + "00" + "11111" + "000", ABA)
        assert track.no_data
        assert not track.ok

    def test_character_parity_mismatch(self):
        track = parse_track("11010" + "00000" + "11111", ABA)
        assert not track.no_data
        assert track.characters == ";"
        assert str(track.error) == "character parity mismatch"
        assert track.describe() == "; (character parity mismatch)"

    def test_lrc_missing(self):
        track = parse_track(encode_track("42", ABA, lrc=False), ABA)
        assert track.characters == ";42?"
        assert str(track.error) == "LRC character missing"

    def test_lrc_mismatch(self):
        bits = encode_track("42", ABA, lrc=False)
        good = encode_track("42", ABA)
        wrong_value = int(good[-5:-1][::-1], 2) ^ 0b0001
        bits += char_frame(wrong_value, ABA)
        track = parse_track(bits, ABA)
        assert track.characters == ";42?"
        assert str(track.error) == "information parity mismatch"

    def test_lrc_with_bad_parity(self):
        good = encode_track("42", ABA)
        bits = good[:-1] + ("0" if good[-1] == "1" else "1")
        track = parse_track(bits, ABA)
        assert str(track.error) == "information parity mismatch"

    def test_custom_even_parity_encoding(self):
        encoding = EncodingDescriptor("TINY", 3, "110", "011", parity=Parity.EVEN)
        bits = encode_track("30", encoding, leading_zeros=4)
        track = parse_track(bits, encoding)
        assert track.ok
        assert track.characters == "3302"


class TestDecodeAll:
    def test_attempt_order(self):
        tracks = decode_all("0" * 30)
        assert [(t.orientation, t.encoding) for t in tracks] == [
            (Orientation.CAPTURED, "IATA"),
            (Orientation.CAPTURED, "ABA"),
            (Orientation.REVERSED, "IATA"),
            (Orientation.REVERSED, "ABA"),
        ]
        assert all(t.no_data for t in tracks)

    def test_captured_swipe(self):
        bits = encode_track("5551234", ABA, leading_zeros=10, trailing_zeros=10)
        tracks = decode_all(bits)
        assert tracks[1].ok
        assert tracks[1].characters == ";5551234?"

    def test_reversed_swipe(self):
        bits = encode_track("5551234", ABA, leading_zeros=10, trailing_zeros=10)[::-1]
        tracks = decode_all(bits)
        assert tracks[3].orientation is Orientation.REVERSED
        assert tracks[3].ok
        assert tracks[3].characters == ";5551234?"

    def test_custom_encodings(self):
        tracks = decode_all("1", encodings=[ABA])
        assert len(tracks) == 2


class TestModels:
    def test_describe_success(self):
        track = DecodedTrack("ABA", Orientation.CAPTURED, characters=";1?")
        assert track.ok
        assert track.describe() == ";1?"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"name": "", "char_length": 5, "start_sentinel": "11010", "end_sentinel": "11111"},
            {"name": "X", "char_length": 1, "start_sentinel": "1", "end_sentinel": "1"},
            {"name": "X", "char_length": 5, "start_sentinel": "1101", "end_sentinel": "11111"},
            {"name": "X", "char_length": 5, "start_sentinel": "11010", "end_sentinel": "1111x"},
        ],
    )
    def test_invalid_encoding(self, kwargs):
        with pytest.raises(ConfigurationError):
            EncodingDescriptor(**kwargs)
