#!/usr/bin/env python3
"""Command-line entry point.

Usage:
    keygroove analyze song.mp3 [--export out/] [--json]
    keygroove export C major --bpm 96 --out out/
    keygroove preview A minor --pattern arpeggio --index 3 [--render preview.wav]
    keygroove serve
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path

from tqdm import tqdm

from keygroove.analysis.cache import AnalysisCache
from keygroove.analysis.engine import AnalysisEngine
from keygroove.audio.loader import decode_to_mono_pcm
from keygroove.config import settings
from keygroove.errors import KeygrooveError
from keygroove.midi.bundle import MidiBundle, bundle_for
from keygroove.preview.output import OfflineContext
from keygroove.preview.synth import PreviewSynthesizer
from keygroove.preview.waveforms import HARMONIC_PRESETS, WAVEFORMS

logger = logging.getLogger("keygroove.cli")

_PROGRESS_LABELS = [
    (100, "Analysis complete!"),
    (81, "Detecting musical key and tempo..."),
    (71, "Preparing for final analysis..."),
    (51, "Extracting musical features..."),
    (31, "Analyzing frequency content..."),
    (11, "Processing audio data..."),
]

PATTERNS = ("scale", "chord", "progression", "arpeggio")


def progress_label(percent: int) -> str:
    for threshold, label in _PROGRESS_LABELS:
        if percent >= threshold:
            return label
    return "Starting analysis..."


def _print_bundle(bundle: MidiBundle) -> None:
    print(f"\n  MIDI for {bundle.key} {bundle.mode} at {bundle.bpm_used} BPM")
    print(f"  Scale:        {' '.join(str(n) for n in bundle.scale.notes)}")
    print(f"  Chords:       {', '.join(c.name for c in bundle.chords)}")
    print(f"  Progressions: {', '.join(p.name for p in bundle.progressions)}")
    print(f"  Arpeggios:    {len(bundle.arpeggios)} patterns")


def cmd_analyze(args) -> int:
    cache = AnalysisCache(settings.cache_dir) if args.cache else None
    engine = AnalysisEngine(cache=cache)
    try:
        signal = decode_to_mono_pcm(args.file)
        engine.initialize()

        with tqdm(total=100, desc="Starting analysis...", unit="%", leave=False, disable=args.json) as pbar:
            def on_progress(percent: int) -> None:
                pbar.set_description(progress_label(percent))
                pbar.update(percent - pbar.n)

            t0 = time.monotonic()
            result = engine.analyze(signal, on_progress=on_progress)
            elapsed = time.monotonic() - t0
    except KeygrooveError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    finally:
        if cache:
            cache.close()

    bundle = bundle_for(result.key, result.mode, result.bpm)

    if args.json:
        print(json.dumps({**result.to_dict(), "tempo_label": result.tempo_label, "bpm_used": bundle.bpm_used}, indent=2))
    else:
        print()
        print(f"  Key:   {result.key} {result.mode} ({result.key_confidence:.0%})")
        if result.bpm:
            print(f"  Tempo: {result.bpm} BPM, {result.tempo_label} ({result.bpm_confidence:.0%}, {result.bpm_method})")
        else:
            print(f"  Tempo: not detected (using {bundle.bpm_used} BPM)")
        print(f"  [{elapsed:.1f}s for {result.duration:.1f}s of audio]")
        _print_bundle(bundle)

    if args.export:
        paths = bundle.write_all(args.export)
        print(f"\n  Wrote {len(paths)} MIDI files to {args.export}", file=sys.stderr if args.json else sys.stdout)
    return 0


def cmd_export(args) -> int:
    try:
        bundle = bundle_for(args.key, args.mode, args.bpm)
    except KeygrooveError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    paths = bundle.write_all(args.out)
    _print_bundle(bundle)
    print(f"\n  Wrote {len(paths)} MIDI files to {args.out}")
    return 0


def _play_pattern(synth: PreviewSynthesizer, bundle: MidiBundle, pattern: str, index: int):
    if pattern == "scale":
        return synth.play_scale(bundle.scale.notes), 8 * 0.5 * 0.8 + 0.5
    if pattern == "chord":
        return synth.play_chord(bundle.chords[index].notes), 2.0
    if pattern == "progression":
        chords = bundle.progressions[index].chords
        return synth.play_progression(chords), len(chords) * 1.5
    arpeggio = bundle.arpeggios[index]
    voices = synth.play_arpeggio(arpeggio)
    return voices, max((v.end for v in voices), default=0.0)


def cmd_preview(args) -> int:
    try:
        bundle = bundle_for(args.key, args.mode, args.bpm)
    except KeygrooveError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    context = OfflineContext(master_gain=settings.preview_master_gain) if args.render else None
    synth = PreviewSynthesizer(context=context)
    try:
        synth.set_waveform(args.waveform, duty=args.duty)
        synth.initialize()
        _, length = _play_pattern(synth, bundle, args.pattern, args.index)
        if args.render:
            import soundfile as sf
            audio = context.render(length + 0.1)
            sf.write(args.render, audio, context.sample_rate)
            print(f"  Rendered {len(audio) / context.sample_rate:.1f}s to {args.render}")
        else:
            time.sleep(length + 0.1)
    except (KeygrooveError, ValueError, IndexError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        pass
    finally:
        synth.dispose()
    return 0


def cmd_serve(args) -> int:
    from keygroove.main import run
    run(host=args.host, port=args.port, reload=args.reload)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="keygroove",
        description="Detect key and tempo of audio files and export matching MIDI",
    )
    parser.add_argument("--verbose", action="store_true", help="Log pipeline steps")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("analyze", help="Analyze an audio file")
    p.add_argument("file", type=Path)
    p.add_argument("--export", type=Path, default=None, metavar="DIR",
                   help="Write the MIDI bundle to DIR")
    p.add_argument("--json", action="store_true", help="Print the result as JSON")
    p.add_argument("--cache", action="store_true", default=settings.cache_enabled,
                   help=f"Cache results in {settings.cache_dir}")
    p.set_defaults(func=cmd_analyze)

    p = sub.add_parser("export", help="Write the MIDI bundle for a key")
    p.add_argument("key")
    p.add_argument("mode", choices=["major", "minor"])
    p.add_argument("--bpm", type=float, default=None)
    p.add_argument("--out", type=Path, default=Path("midi"))
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("preview", help="Play (or render) a pattern for a key")
    p.add_argument("key")
    p.add_argument("mode", choices=["major", "minor"])
    p.add_argument("--pattern", choices=PATTERNS, default="scale")
    p.add_argument("--index", type=int, default=0,
                   help="Chord, progression or arpeggio index (default: 0)")
    p.add_argument("--bpm", type=float, default=None)
    p.add_argument("--waveform", default=settings.preview_waveform,
                   choices=sorted([*WAVEFORMS, *HARMONIC_PRESETS]))
    p.add_argument("--duty", type=float, default=None, help="Pulse duty cycle")
    p.add_argument("--render", type=Path, default=None, metavar="WAV",
                   help="Render offline to a WAV file instead of playing")
    p.set_defaults(func=cmd_preview)

    p = sub.add_parser("serve", help="Run the HTTP/WebSocket API")
    p.add_argument("--host", default=None)
    p.add_argument("--port", type=int, default=None)
    p.add_argument("--reload", action="store_true")
    p.set_defaults(func=cmd_serve)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(name)s %(levelname)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
