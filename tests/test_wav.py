"""Unit tests for the WAV encoder."""

import datetime
import io
import os
import struct

import numpy as np
import pytest
import soundfile as sf

from aura_harmonics.data_types import RenderedBuffer, ToneType
from aura_harmonics.exceptions import (
    AudioGenerationError,
    DecodeError,
    UnsupportedFormatError,
)
from aura_harmonics.wav import (
    encode_wav,
    export_filename,
    parse_wav_header,
    quantize_pcm16,
    save_audio_file,
)


def test_encode_all_zero_buffer():
    "Silence encodes to a valid header followed by zeroed 16-bit samples"
    rendered = RenderedBuffer(
        samples=np.zeros((2, 1000), dtype=np.float32), sample_rate=44100
    )
    data = encode_wav(rendered)
    header = parse_wav_header(data)

    assert len(data) == 44 + 1000 * 2 * 2
    assert header.chunk_size == 36 + 4000
    assert header.data_size == 4000
    assert header.audio_format == 1
    assert header.num_channels == 2
    assert header.byte_rate == 44100 * 2 * 2
    assert header.block_align == 4
    assert header.bits_per_sample == 16
    assert data[44:] == bytes(4000)


def test_quantization_is_asymmetric_and_truncates():
    samples = np.array([-1.0, -0.5, 0.0, 0.5, 1.0, 2.0, -2.0, np.nan, 0.99999])
    assert quantize_pcm16(samples).tolist() == [
        -32768,
        -16384,
        0,
        16383,
        32767,
        32767,
        -32768,
        0,
        32766,
    ]


def test_stereo_is_interleaved_per_frame():
    rendered = RenderedBuffer(
        samples=np.array([[0.5, 1.0], [-0.5, -1.0]]), sample_rate=8000
    )
    pcm = np.frombuffer(encode_wav(rendered)[44:], dtype="<i2")
    assert pcm.tolist() == [16383, -16384, 32767, -32768]


def test_encoding_is_deterministic():
    rng = np.random.default_rng(7)
    rendered = RenderedBuffer(
        samples=rng.uniform(-1.2, 1.2, size=(1, 5000)), sample_rate=22050
    )
    assert encode_wav(rendered) == encode_wav(rendered)


def test_encoded_stream_is_readable_by_soundfile():
    samples = np.linspace(-0.9, 0.9, 2000).reshape(1, -1)
    data = encode_wav(RenderedBuffer(samples=samples, sample_rate=44100))
    decoded, sample_rate = sf.read(io.BytesIO(data), dtype="float32")
    assert sample_rate == 44100
    assert decoded.shape == (2000,)
    assert np.allclose(decoded, samples[0], atol=1e-4)


def test_parse_rejects_non_wav():
    with pytest.raises(DecodeError):
        parse_wav_header(b"not a wav")
    with pytest.raises(DecodeError):
        parse_wav_header(b"X" * 64)


def test_export_filename_format():
    stamp = datetime.datetime(
        2026, 10, 19, 12, 0, 0, 123456, tzinfo=datetime.timezone.utc
    )
    assert (
        export_filename(ToneType.BINAURAL, with_music=True, timestamp=stamp)
        == "aura_harmonics_binaural_with_music_2026-10-19T12-00-00-123Z.wav"
    )
    assert (
        export_filename("isochronic", timestamp=stamp)
        == "aura_harmonics_isochronic_2026-10-19T12-00-00-123Z.wav"
    )


def test_save_audio_file(tmp_path):
    "Encoded audio is written verbatim, creating missing directories"
    data = encode_wav(RenderedBuffer(samples=np.zeros((1, 100)), sample_rate=44100))
    file_path = tmp_path / "nested" / "out.wav"
    save_audio_file(str(file_path), data)
    assert os.path.exists(str(file_path))
    assert file_path.read_bytes() == data


def test_save_audio_file_rejects_other_formats(tmp_path):
    data = encode_wav(RenderedBuffer(samples=np.zeros((1, 100)), sample_rate=44100))
    with pytest.raises(UnsupportedFormatError):
        save_audio_file(str(tmp_path / "out.flac"), data)


def test_save_audio_file_rejects_empty_audio(tmp_path):
    data = encode_wav(RenderedBuffer(samples=np.zeros((1, 0)), sample_rate=44100))
    with pytest.raises(AudioGenerationError):
        save_audio_file(str(tmp_path / "out.wav"), data)


@pytest.mark.parametrize("channels", [1, 2])
def test_soundfile_output_matches_canonical_layout(channels):
    "The written stream is a 44-byte PCM header plus the quantized frames"
    rng = np.random.default_rng(channels)
    samples = rng.uniform(-1.2, 1.2, size=(channels, 3000))
    data = encode_wav(RenderedBuffer(samples=samples, sample_rate=44100))

    block_align = channels * 2
    data_size = 3000 * block_align
    expected_header = struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        36 + data_size,
        b"WAVE",
        b"fmt ",
        16,
        1,
        channels,
        44100,
        44100 * block_align,
        block_align,
        16,
        b"data",
        data_size,
    )
    assert data[:44] == expected_header
    assert data[44:] == quantize_pcm16(samples.T).tobytes()


def test_save_audio_file_rejects_undecodable_data(tmp_path):
    with pytest.raises(AudioGenerationError):
        save_audio_file(str(tmp_path / "out.wav"), b"RIFF" + bytes(100))
    assert not (tmp_path / "out.wav").exists()
