"""Command-line interface for rendering and auditioning tones from a YAML script."""

import argparse
import logging
import os
import sys
import time
from typing import List, Optional

from aura_harmonics.data_types import DecodedMusicBuffer
from aura_harmonics.exceptions import AuraHarmonicsError, ConfigurationError
from aura_harmonics.live_engine import LivePlaybackEngine
from aura_harmonics.mixer import Mixer
from aura_harmonics.music import decode_audio
from aura_harmonics.offline import OfflineRenderer
from aura_harmonics.presets import (
    PRESETS,
    brainwave_band,
    entrainment_frequency,
)
from aura_harmonics.utils import SessionConfig, load_yaml_config
from aura_harmonics.wav import (
    encode_wav,
    export_filename,
    parse_wav_header,
    save_audio_file,
)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Render or audition isochronic, binaural and monaural tones."
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    export = subparsers.add_parser("export", help="Render a session script to WAV.")
    export.add_argument("script", help="Path to YAML session script.")
    export.add_argument(
        "-o", "--output", help="Output WAV file path (overrides YAML setting)."
    )

    play = subparsers.add_parser("play", help="Play a session script live.")
    play.add_argument("script", help="Path to YAML session script.")
    play.add_argument(
        "--seconds",
        type=float,
        help="Stop after this many seconds (default: until interrupted).",
    )
    play.add_argument("--device", type=int, help="Output device index.")

    subparsers.add_parser("presets", help="List the built-in presets.")
    return parser.parse_args(argv)


def configure_logging(verbose: bool) -> None:
    """Configure logging based on verbosity."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )


def load_music(session: SessionConfig) -> Optional[DecodedMusicBuffer]:
    """Read and decode the session's music file, if it names one."""
    if session.music_file is None:
        return None
    try:
        with open(session.music_file, "rb") as f:
            data = f.read()
    except OSError as e:
        raise ConfigurationError(
            f"Cannot read music file '{session.music_file}': {e}"
        ) from e
    return decode_audio(data, name=os.path.basename(session.music_file))


def run_export(session: SessionConfig, output: Optional[str]) -> str:
    """Render the session offline and write it to disk."""
    logger = logging.getLogger(__name__)
    music = load_music(session)
    renderer = OfflineRenderer(sample_rate=session.sample_rate)
    rendered = renderer.render_job(session.export_job(music))
    data = encode_wav(rendered)

    filename = (
        output
        or session.output_filename
        or export_filename(session.tone.tone_type, with_music=music is not None)
    )
    save_audio_file(filename, data)

    header = parse_wav_header(data)
    logger.info(
        "WAV: %d channel(s), %d Hz, %d-bit, %d data bytes.",
        header.num_channels,
        header.sample_rate,
        header.bits_per_sample,
        header.data_size,
    )
    return filename


def run_play(
    session: SessionConfig, seconds: Optional[float], device: Optional[int]
) -> None:
    """Play the session live until seconds elapse or the user interrupts."""
    logger = logging.getLogger(__name__)
    music = load_music(session)

    if music is None:
        player = LivePlaybackEngine(
            sample_rate=session.sample_rate, volume=session.volume, device=device
        )
    else:
        player = Mixer(
            sample_rate=session.sample_rate,
            frequencies_volume=session.frequencies_volume,
            music_volume=session.music_volume,
            master_volume=session.volume,
            device=device,
        )

    try:
        if music is None:
            player.start(session.tone)
        else:
            player.play_frequencies(session.tone)
            player.play_music(music, loop=session.loop_music)

        logger.info("Playing. Press Ctrl+C to stop.")
        if seconds is None:
            while True:
                time.sleep(1.0)
        else:
            time.sleep(max(0.0, seconds))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    finally:
        player.close()


def list_presets() -> None:
    for key, preset in PRESETS.items():
        rhythm = entrainment_frequency(preset.tone)
        band = brainwave_band(rhythm) or "-"
        print(
            f"{key:<36} {preset.tone.tone_type.value:<11} "
            f"{rhythm:>6.2f} Hz  {band:<6} {preset.description}"
        )


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the CLI."""
    args = parse_args(argv)
    configure_logging(args.verbose)
    logger = logging.getLogger(__name__)

    try:
        if args.command == "presets":
            list_presets()
            return

        session = load_yaml_config(args.script)
        logger.debug("Loaded configuration: %s", session)
        logger.info("Sample Rate: %d Hz", session.sample_rate)
        logger.info("Tone: %s", session.tone)

        if args.command == "export":
            filename = run_export(session, args.output)
            logger.info("Audio file saved successfully to '%s'.", filename)
        elif args.command == "play":
            run_play(session, args.seconds, args.device)

    except AuraHarmonicsError as e:
        logger.error("Error: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
