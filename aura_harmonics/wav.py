"""Bit-exact 16-bit PCM WAV encoding of rendered buffers."""

import datetime
import io
import logging
import os
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np
import soundfile as sf

from aura_harmonics.constants import (
    EXPORT_FILENAME_PREFIX,
    SUPPORTED_FORMATS,
    WAV_FORMAT,
    WAV_SUBTYPE,
)
from aura_harmonics.data_types import RenderedBuffer, ToneType
from aura_harmonics.exceptions import (
    AudioGenerationError,
    DecodeError,
    UnsupportedFormatError,
)

logger = logging.getLogger(__name__)

_PCM_BITS = {"PCM_U8": 8, "PCM_16": 16, "PCM_24": 24, "PCM_32": 32}
# Frames quantized per pass, bounding the float temporaries on long renders.
_ENCODE_CHUNK_FRAMES = 1 << 18


@dataclass(frozen=True)
class WavHeader:
    """Fields of a canonical 44-byte PCM WAV header."""

    chunk_size: int
    audio_format: int
    num_channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    data_size: int

    @property
    def frames(self) -> int:
        return self.data_size // self.block_align if self.block_align else 0

    @property
    def duration(self) -> float:
        return self.frames / self.sample_rate if self.sample_rate else 0.0


def quantize_pcm16(samples: np.ndarray) -> np.ndarray:
    """Convert float samples to signed 16-bit integers.

    Samples are clamped to [-1, 1]; negative values scale by 32768 and
    non-negative values by 32767, then truncate toward zero. NaN becomes 0.
    """
    values = np.nan_to_num(np.asarray(samples, dtype=np.float64), nan=0.0)
    values = np.clip(values, -1.0, 1.0)
    scaled = np.where(values < 0, values * 32768.0, values * 32767.0)
    return np.trunc(scaled).astype("<i2")


def encode_wav(rendered: RenderedBuffer) -> bytes:
    """Encode a rendered buffer as a RIFF/WAVE byte stream.

    Samples are quantized here, so soundfile stores the 16-bit values
    unchanged. Multi-channel input is interleaved frame by frame. Identical
    input always yields identical bytes.

    Raises:
        AudioGenerationError: If soundfile fails to write the stream.
    """
    frames = rendered.frames
    out = io.BytesIO()
    try:
        with sf.SoundFile(
            out,
            mode="w",
            samplerate=rendered.sample_rate,
            channels=rendered.channels,
            format=WAV_FORMAT,
            subtype=WAV_SUBTYPE,
        ) as f:
            for offset in range(0, frames, _ENCODE_CHUNK_FRAMES):
                end = min(frames, offset + _ENCODE_CHUNK_FRAMES)
                f.write(quantize_pcm16(rendered.samples[:, offset:end].T))
    except (sf.SoundFileError, RuntimeError, ValueError) as e:
        raise AudioGenerationError(f"Error encoding WAV data: {e}") from e

    data = out.getvalue()
    logger.debug(
        "Encoded %d frame(s), %d channel(s) at %d Hz into %d bytes.",
        frames,
        rendered.channels,
        rendered.sample_rate,
        len(data),
    )
    return data


def parse_wav_header(data: bytes) -> WavHeader:
    """Describe a PCM WAV stream by the fields of its canonical header.

    Raises:
        DecodeError: If data is not a PCM WAV stream.
    """
    try:
        info = sf.info(io.BytesIO(data))
    except (sf.SoundFileError, RuntimeError, TypeError) as e:
        raise DecodeError(f"Not a readable WAV stream: {e}") from e
    if info.format != WAV_FORMAT or info.subtype not in _PCM_BITS:
        raise DecodeError(f"Not a PCM WAV stream: {info.format}/{info.subtype}.")

    bits_per_sample = _PCM_BITS[info.subtype]
    block_align = info.channels * bits_per_sample // 8
    return WavHeader(
        chunk_size=len(data) - 8,
        audio_format=1,
        num_channels=info.channels,
        sample_rate=info.samplerate,
        byte_rate=info.samplerate * block_align,
        block_align=block_align,
        bits_per_sample=bits_per_sample,
        data_size=info.frames * block_align,
    )


def export_filename(
    tone_type: Union[ToneType, str],
    with_music: bool = False,
    timestamp: Optional[datetime.datetime] = None,
) -> str:
    """Build aura_harmonics_<type>[_with_music]_<UTC timestamp>.wav.

    The timestamp is ISO-8601 in UTC with millisecond precision, with ':'
    and '.' replaced by '-', e.g. 2026-10-19T12-00-00-000Z.
    """
    if not isinstance(tone_type, ToneType):
        tone_type = ToneType.from_name(tone_type)
    if timestamp is None:
        timestamp = datetime.datetime.now(datetime.timezone.utc)
    elif timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(datetime.timezone.utc)

    stamp = timestamp.strftime("%Y-%m-%dT%H:%M:%S") + (
        f".{timestamp.microsecond // 1000:03d}Z"
    )
    stamp = stamp.replace(":", "-").replace(".", "-")
    music = "_with_music" if with_music else ""
    return f"{EXPORT_FILENAME_PREFIX}_{tone_type.slug}{music}_{stamp}.wav"


def save_audio_file(filename: str, data: bytes) -> None:
    """Write an encoded WAV stream to disk.

    Args:
        filename: The path to the output file. Only .wav is supported.
        data: Bytes produced by encode_wav().

    Raises:
        UnsupportedFormatError: If the filename extension is not .wav.
        AudioGenerationError: If there is no audio or writing fails.
    """
    _, ext = os.path.splitext(filename)
    if ext.lower() not in SUPPORTED_FORMATS:
        format_list = ", ".join(SUPPORTED_FORMATS)
        raise UnsupportedFormatError(
            f"Unsupported format '{ext}'. Supported formats: {format_list}",
        )

    try:
        header = parse_wav_header(data)
    except DecodeError as e:
        raise AudioGenerationError(f"Cannot save file: {e}") from e
    if header.frames == 0:
        raise AudioGenerationError("Cannot save file: No audio data generated.")

    output_dir = os.path.dirname(filename)
    if output_dir:
        try:
            os.makedirs(output_dir, exist_ok=True)
        except OSError as e:
            raise AudioGenerationError(
                f"Failed to create output directory '{output_dir}': {e}"
            ) from e

    try:
        with open(filename, "wb") as f:
            f.write(data)
    except OSError as e:
        raise AudioGenerationError(f"Error writing audio file '{filename}': {e}") from e

    minutes, seconds = divmod(header.duration, 60)
    logger.info(
        "Audio file '%s' created successfully. Total duration: %dm %.2fs.",
        filename,
        int(minutes),
        seconds,
    )
