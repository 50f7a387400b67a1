"""
Tests for the encode stage and the libsndfile encoder/muxer.
"""
import io

import pytest
import numpy as np
import soundfile as sf

from vocalonly.core.chunked_io import ChunkedReader
from vocalonly.core.codecs import PcmEncoder, compression_level_for
from vocalonly.core.config import ENCODE_PROFILE, LOSSLESS_PROFILE, EncodeProfile
from vocalonly.core.decode import decode_to_file
from vocalonly.core.encode import encode_file, run_encode
from vocalonly.core.errors import CodecInitError
from vocalonly.core.types import AudioFormat, EncodedChunk, FormatChanged

from conftest import SAMPLE_RATE, raw_bytes

FORMAT = AudioFormat(sample_rate=SAMPLE_RATE, channels=2, container="OGG", codec="VORBIS")


class ScriptedEncoder:
    """Emits a fixed script of outputs, optionally before the format is known."""

    def __init__(self, script):
        self._script = list(script)
        self._pending = []
        self.fed = []
        self._eos = False

    def configure(self, profile):
        self.profile = profile

    def feed(self, data):
        if data is None:
            self._eos = True
            self._pending.extend(self._script)
            self._script = []
        else:
            self.fed.append(data)
        return True

    def drain(self):
        return self._pending.pop(0) if self._pending else None

    def is_finished(self):
        return self._eos and not self._pending


class RecordingMuxer:
    def __init__(self):
        self.events = []

    def add_track(self, fmt):
        self.events.append(("add_track", fmt))
        return 7

    def start(self):
        self.events.append(("start",))

    def write_sample(self, track, chunk):
        self.events.append(("write", track, chunk.data))

    def stop(self):
        self.events.append(("stop",))


def chunk(data, pts=0.0):
    return EncodedChunk(data=data, pts=pts, frames=len(data) // 4)


class TestRunEncode:

    def test_chunks_before_format_are_dropped(self):
        script = [chunk(b"early"), FormatChanged(FORMAT), chunk(b"a"), chunk(b"b")]
        muxer = RecordingMuxer()
        written = run_encode(ChunkedReader(io.BytesIO(b"\x00" * 10)), ScriptedEncoder(script), muxer)
        assert written == 2
        assert muxer.events == [
            ("add_track", FORMAT),
            ("start",),
            ("write", 7, b"a"),
            ("write", 7, b"b"),
            ("stop",),
        ]

    def test_feeds_reader_chunks(self):
        encoder = ScriptedEncoder([FormatChanged(FORMAT)])
        run_encode(ChunkedReader(io.BytesIO(b"z" * 2500), buffer_size=1000), encoder, RecordingMuxer())
        assert [len(c) for c in encoder.fed] == [1000, 1000, 500]

    def test_second_format_change_fails_and_stops_muxer(self):
        script = [FormatChanged(FORMAT), FormatChanged(FORMAT)]
        muxer = RecordingMuxer()
        with pytest.raises(CodecInitError):
            run_encode(ChunkedReader(io.BytesIO(b"")), ScriptedEncoder(script), muxer)
        assert muxer.events[-1] == ("stop",)

    def test_missing_format_fails(self):
        muxer = RecordingMuxer()
        with pytest.raises(CodecInitError):
            run_encode(ChunkedReader(io.BytesIO(b"data")), ScriptedEncoder([chunk(b"x")]), muxer)
        assert muxer.events == []


class TestPcmEncoder:

    def test_rejects_unwritable_profile(self):
        with pytest.raises(CodecInitError):
            PcmEncoder().configure(EncodeProfile(container="WAV", codec="VORBIS"))

    def test_rejects_bad_channel_count(self):
        with pytest.raises(CodecInitError):
            PcmEncoder().configure(EncodeProfile(channels=0))

    def test_format_first_then_frame_aligned_chunks(self):
        encoder = PcmEncoder()
        encoder.configure(ENCODE_PROFILE)
        encoder.feed(b"\x01" * 10)  # 2 whole stereo frames + 2 bytes
        first = encoder.drain()
        assert isinstance(first, FormatChanged)
        assert first.format.sample_rate == 44100
        assert first.format.channels == 2
        second = encoder.drain()
        assert isinstance(second, EncodedChunk)
        assert second.frames == 2
        assert len(second.data) == 8
        encoder.feed(b"\x01" * 2)
        third = encoder.drain()
        assert third.frames == 1
        assert third.pts == pytest.approx(2 / 44100)

    def test_partial_trailing_frame_dropped(self):
        encoder = PcmEncoder()
        encoder.configure(ENCODE_PROFILE)
        encoder.feed(b"\x01" * 3)
        encoder.feed(None)
        outputs = []
        while True:
            out = encoder.drain()
            if out is None:
                break
            outputs.append(out)
        assert [type(o) for o in outputs] == [FormatChanged]
        assert encoder.is_finished()


class TestCompressionLevel:

    def test_lossless_has_no_level(self):
        fmt = AudioFormat(sample_rate=SAMPLE_RATE, channels=2, container="FLAC", codec="PCM_16", bitrate=None)
        assert compression_level_for(fmt) is None

    def test_higher_bitrate_means_lower_compression(self):
        low = compression_level_for(AudioFormat(SAMPLE_RATE, 2, codec="VORBIS", bitrate=96_000))
        high = compression_level_for(AudioFormat(SAMPLE_RATE, 2, codec="VORBIS", bitrate=192_000))
        assert 0.0 <= high < low <= 1.0
        assert high == pytest.approx(0.4)


class TestSoundFileEncode:

    def _write_raw(self, tmp_path, samples):
        path = tmp_path / "in.raw"
        path.write_bytes(raw_bytes(samples))
        return path

    def test_lossless_round_trip_is_exact(self, tmp_path, full_mix_samples):
        raw = self._write_raw(tmp_path, full_mix_samples)
        out = encode_file(raw, tmp_path / "out.flac", LOSSLESS_PROFILE)
        decoded, sr = sf.read(out, dtype='int16')
        assert sr == SAMPLE_RATE
        np.testing.assert_array_equal(decoded, full_mix_samples)

    def test_lossy_round_trip_within_tolerance(self, tmp_path, full_mix_samples):
        raw = self._write_raw(tmp_path, full_mix_samples)
        out = encode_file(raw, tmp_path / "out.ogg", ENCODE_PROFILE)

        info = sf.info(out)
        assert info.samplerate == 44100
        assert info.channels == 2
        assert info.format == "OGG"

        with open(out, 'rb') as source:
            fmt = decode_to_file(source, tmp_path / "back.raw")
        assert (fmt.sample_rate, fmt.channels) == (44100, 2)

        back = np.frombuffer((tmp_path / "back.raw").read_bytes(), dtype='<i2').reshape(-1, 2)
        assert abs(len(back) - len(full_mix_samples)) <= 2048
        n = min(len(back), len(full_mix_samples))
        original = full_mix_samples[:n].astype(np.float64) / 32768
        decoded = back[:n].astype(np.float64) / 32768
        rms_error = np.sqrt(np.mean((original - decoded) ** 2))
        assert rms_error < 0.05
