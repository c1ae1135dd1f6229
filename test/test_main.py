"""Command line front end tests using recorded WAV swipes."""
from __future__ import annotations

import wave

import numpy as np
import pytest

import magswipe.main as cli
from daq.registry import DriverDescriptor
from shared.models import ABA
from test.fixtures.controlled_source import ControlledSource
from test.fixtures.signal_generators import encode_track, make_swipe


@pytest.fixture
def swipe_wav(tmp_path):
    samples = make_swipe(encode_track("1234", ABA, leading_zeros=15, trailing_zeros=15))
    path = tmp_path / "swipe.wav"
    with wave.open(str(path), "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(48000)
        wav.writeframes(samples.astype("<i2").tobytes())
    return path


def test_decode_file(swipe_wav, capsys):
    assert cli.main(["-s", "-f", str(swipe_wav)]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert "ABA (captured): ;1234?" in lines
    assert len(lines) == 4
    assert lines[0].startswith("IATA (captured): ")


def test_version(capsys):
    assert cli.main(["-v"]) == 0
    err = capsys.readouterr().err
    assert "magswipe" in err
    assert "Version" in err


def test_zero_threshold_rejected(swipe_wav):
    assert cli.main(["-s", "-t", "0", "-f", str(swipe_wav)]) == 1


def test_fixed_threshold(swipe_wav, capsys):
    assert cli.main(["-s", "-t", "4000", "-f", str(swipe_wav)]) == 0
    assert "ABA (captured): ;1234?" in capsys.readouterr().out


def test_missing_file(tmp_path):
    assert cli.main(["-s", "-f", str(tmp_path / "missing.wav")]) == 1


def test_quiet_file_reports_no_swipe(tmp_path):
    path = tmp_path / "quiet.wav"
    with wave.open(str(path), "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(48000)
        wav.writeframes(np.zeros(4800, dtype="<i2").tobytes())
    assert cli.main(["-s", "-f", str(path)]) == 1


def test_max_level(swipe_wav, capsys):
    assert cli.main(["-s", "-m", "-f", str(swipe_wav)]) == 0
    assert "Maximum level: 20000" in capsys.readouterr().out


def test_list_devices(monkeypatch, capsys):
    descriptor = DriverDescriptor(key="test", name="Controlled", cls=ControlledSource, module=__name__)
    monkeypatch.setattr(cli, "list_drivers", lambda: [descriptor])
    assert cli.main(["-s", "-l"]) == 0
    out = capsys.readouterr().out
    assert "test" in out
    assert "Controlled Test Source" in out


def test_settings_from_args():
    args = cli.build_parser().parse_args(["-a", "40", "-r", "44100"])
    settings = cli.settings_from_args(args)
    assert settings.auto_threshold_percent == 40
    assert settings.sample_rate == 44100
    fixed = cli.settings_from_args(cli.build_parser().parse_args(["-t", "3000"]))
    assert fixed.silence_threshold == 3000
    assert fixed.auto_threshold is False


def test_format_report_uses_describe():
    from core.track_parser import decode_all
    from shared.models import DemodulationResult, SampleWindow, SwipeReport

    report = SwipeReport(
        window=SampleWindow(0, 10),
        threshold=1,
        peak_level=2,
        demodulation=DemodulationResult(bits="", intervals=np.zeros(0, dtype=np.int64), seed_width=1.0),
        tracks=decode_all(""),
    )
    assert cli.format_report(report) == [
        "IATA (captured): no data",
        "ABA (captured): no data",
        "IATA (reversed): no data",
        "ABA (reversed): no data",
    ]


def test_sources_come_from_registry(tmp_path):
    from daq.file_source import FileSource
    from daq.soundcard_source import SoundCardSource

    parser = cli.build_parser()
    source, device_id = cli._open_source(parser.parse_args(["-f", str(tmp_path / "x.wav")]))
    assert isinstance(source, FileSource)
    assert device_id == str(tmp_path / "x.wav")
    source, device_id = cli._open_source(parser.parse_args(["-d", "2"]))
    assert isinstance(source, SoundCardSource)
    assert device_id == "2"


def test_missing_driver_exits_with_error(monkeypatch, swipe_wav):
    def missing(key, **kwargs):
        raise KeyError(f"No capture driver registered for key {key!r}")

    monkeypatch.setattr(cli, "create_source", missing)
    assert cli.main(["-s", "-f", str(swipe_wav)]) == 1
