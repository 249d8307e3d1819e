"""Offline WAV rendering: load audio, denoise + time-stretch, save output.

Usage:
    python -m stretch.audio.render input.wav output.wav [--preset preset.json]
        [--stretch 1.5] [--frame-size 1024] [--hop-size 256]
        [--noise-seconds 0.5] [--noise-frames K] [--target 1.0] [--staged]

The first --noise-seconds of the input are taken as pure background noise.
Without --preset, uses default params.
"""

import argparse
import json
import logging
import sys

import numpy as np

from shared.audio import CHANNEL_MODES, load_wav, save_wav
from shared.errors import StretchError
from stretch.engine.params import SCHEMA, TRANSFORM_NAMES, default_params
from stretch.engine.pipeline import render_stretch
from stretch.engine.staged import StagedStretchPipeline

log = logging.getLogger(__name__)


def load_preset(path):
    with open(path) as f:
        return SCHEMA.validate_and_clamp(json.load(f))


def build_params(args):
    params = default_params()
    if args.preset:
        params.update(load_preset(args.preset))

    overrides = {
        "stretch_factor": args.stretch,
        "frame_size": args.frame_size,
        "hop_size": args.hop_size,
        "noise_calibration_duration": args.noise_seconds,
        "noise_calibration_frames": args.noise_frames,
        "normalization_target": args.target,
        "transform": args.transform,
    }
    params.update({k: v for k, v in overrides.items() if v is not None})
    if args.no_compensation:
        params["window_compensation"] = False
    return params


def make_parser():
    parser = argparse.ArgumentParser(description="Denoising phase-vocoder time stretcher")
    parser.add_argument("input", help="Input WAV file")
    parser.add_argument("output", help="Output WAV file")
    parser.add_argument("--preset", help="Preset JSON file")
    parser.add_argument("--stretch", type=float, help="Stretch factor (>1 slower, <1 faster)")
    parser.add_argument("--frame-size", type=int)
    parser.add_argument("--hop-size", type=int)
    parser.add_argument("--noise-seconds", type=float,
                        help="Lead-in duration assumed to be pure noise")
    parser.add_argument("--noise-frames", type=int,
                        help="Explicit number of calibration frames (overrides --noise-seconds)")
    parser.add_argument("--target", type=float, help="Output peak ceiling")
    parser.add_argument("--transform", choices=TRANSFORM_NAMES)
    parser.add_argument("--no-compensation", action="store_true",
                        help="Skip squared-window-sum compensation")
    parser.add_argument("--channel", choices=CHANNEL_MODES, default="first",
                        help="How to reduce multichannel input to mono")
    parser.add_argument("--staged", action="store_true",
                        help="Run the threaded staged pipeline")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv=None):
    args = make_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(name)s %(levelname)s: %(message)s")

    params = build_params(args)
    audio, sr = load_wav(args.input, channel=args.channel)
    params["sample_rate"] = int(sr)
    log.info("loaded %s: %d samples, %d Hz", args.input, len(audio), sr)

    try:
        if args.staged:
            output = StagedStretchPipeline(params).run(audio).output
        else:
            output = render_stretch(audio, params)
    except StretchError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    save_wav(args.output, output, sr)
    log.info("saved %s (%.2fs, peak %.3f)", args.output, len(output) / sr,
             float(np.max(np.abs(output))) if len(output) else 0.0)
    return 0


if __name__ == "__main__":
    sys.exit(main())
