#!/usr/bin/env python3
"""
demo_cli.py — Standalone command-line demo
============================================
Simulates a face + fingertip recording with a known transit time and
runs the full PTT pipeline on it WITHOUT the FastAPI server.
Useful for quick testing, demos, and tuning.

Usage:
    python demo_cli.py --ptt 120 --hr 65 --rate-a 30 --rate-b 60 --drift 1.5
    python demo_cli.py --motion-burst 10 3 --wavelet

⚠️  DISCLAIMER: This is a WELLNESS ESTIMATION tool — NOT a medical device.
"""

import argparse

from dsp.wavelet import WaveletConfig
from ptt.pipeline import PttPipeline
from simulation.synthetic import SimulationConfig, simulate_session
from utils.logger import get_logger

logger = get_logger("demo_cli")


def pretty_print(label: str, value, unit: str = "") -> None:
    """Colourised terminal output."""
    print(f"  \033[1;36m{label:<28}\033[0m \033[1;33m{value}\033[0m {unit}")


def _fmt(value, digits: int = 1):
    return "—" if value is None else round(value, digits)


def main():
    parser = argparse.ArgumentParser(description="Dual-PPG PTT CLI Demo (simulated recording)")
    parser.add_argument("--duration", type=float, default=30.0, help="Recording length (seconds)")
    parser.add_argument("--hr", type=float, default=72.0, help="Heart rate (BPM)")
    parser.add_argument("--ptt", type=float, default=100.0, help="True transit time (ms)")
    parser.add_argument("--rate-a", type=float, default=30.0, help="Face camera rate (Hz)")
    parser.add_argument("--rate-b", type=float, default=30.0, help="Finger camera rate (Hz)")
    parser.add_argument("--noise-a", type=float, default=0.05, help="Face noise (fraction of pulse)")
    parser.add_argument("--noise-b", type=float, default=0.02, help="Finger noise (fraction of pulse)")
    parser.add_argument("--drift", type=float, default=0.0, help="Finger clock drift (ms/s)")
    parser.add_argument("--drops", type=float, default=0.0, help="Frame drop probability")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--wavelet", action="store_true", help="Enable wavelet denoising")
    parser.add_argument("--motion-burst", type=float, nargs=2, metavar=("START", "LENGTH"),
                        help="Inject a face motion burst (seconds)")
    args = parser.parse_args()

    print("\n" + "=" * 60)
    print("  DUAL-PPG PULSE TRANSIT TIME — CLI DEMO")
    print("=" * 60)
    print("  ⚠️  This is a WELLNESS ESTIMATION tool — NOT medical grade.")
    print("=" * 60 + "\n")

    config = SimulationConfig(
        duration_s=args.duration,
        hr_bpm=args.hr,
        ptt_ms=args.ptt,
        rate_a_hz=args.rate_a,
        rate_b_hz=args.rate_b,
        noise_a=args.noise_a,
        noise_b=args.noise_b,
        drift_ms_per_s=args.drift,
        drop_probability=args.drops,
        motion_burst=tuple(args.motion_burst) if args.motion_burst else None,
        seed=args.seed,
    )
    print(f"  Simulated    : {config.duration_s:.0f} s, HR {config.hr_bpm:.0f} BPM, "
          f"PTT {config.ptt_ms:.0f} ms")
    print(f"  Cameras      : face {config.rate_a_hz:.0f} Hz, finger {config.rate_b_hz:.0f} Hz, "
          f"drift {config.drift_ms_per_s} ms/s, drops {config.drop_probability:.0%}\n")

    session = simulate_session(config)
    pipeline = PttPipeline(wavelet=WaveletConfig() if args.wavelet else None)
    result = pipeline.process(session.series, session.aux)
    ptt = result.ptt

    # ── Pretty-print results ─────────────────────────────────────────────
    print("=" * 60)
    print("  RESULTS")
    print("=" * 60)

    print("\n  ── Timing ──")
    if result.drift is not None:
        pretty_print("Drift", round(result.drift.drift_ms_per_second, 3), "ms/s")
        pretty_print("  acceptable", result.drift.is_acceptable)
        pretty_print("Frame drops (A / B)",
                     f"{result.drift.channel_a.frame_drops} / {result.drift.channel_b.frame_drops}")
    pretty_print("Unified samples", len(result.unified))
    pretty_print("Masked", round(result.masked_percent, 1), "%")
    if result.segment is not None:
        pretty_print("Analysed segment", round(result.segment.duration_s, 1), "s")

    print("\n  ── Signal Quality ──")
    for label, q in (("Face", result.quality_a), ("Finger", result.quality_b)):
        if q is None:
            continue
        pretty_print(f"{label} SQI", round(q.score, 1), "/ 100")
        pretty_print(f"  {label} SNR", round(q.snr_db, 1), "dB")
    for label, hr in (("Face", result.heart_rate_a), ("Finger", result.heart_rate_b)):
        if hr is not None:
            pretty_print(f"{label} heart rate", _fmt(hr["hr_bpm"]), "BPM")

    print("\n  ── Pulse Transit Time ──")
    if ptt.is_valid:
        pretty_print("PTT (consensus)", round(ptt.lag_ms, 1), "ms")
        pretty_print("  Cross-correlation", _fmt(ptt.xcorr_lag_ms), "ms")
        pretty_print("  Foot-to-foot", _fmt(ptt.foot_lag_ms), "ms")
        pretty_print("  Agreement", round(ptt.agreement_ms, 1), "ms")
        pretty_print("Correlation", round(ptt.correlation, 3))
        pretty_print("Confidence", f"{ptt.confidence:.2f} ({ptt.confidence_label})")
        pretty_print("Reportable", ptt.reportable)
        pretty_print("Error vs truth", round(ptt.lag_ms - config.ptt_ms, 1), "ms")
    else:
        print(f"    ⚠️  {ptt.message}")
    for tip in ptt.guidance:
        print(f"    • {tip}")

    print("\n  ── Stage timings ──")
    for stage, ms in result.timings_ms.items():
        pretty_print(stage, ms, "ms")

    print("\n" + "=" * 60)
    print("  ⚠️  DISCLAIMER: All values above are ESTIMATES.")
    print("      Do NOT use for medical diagnosis or treatment.")
    print("=" * 60 + "\n")


if __name__ == "__main__":
    main()
