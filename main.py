#!/usr/bin/env python3
"""
ECG Stream - Command Line Entry Point
Streams a recording (or a synthetic waveform) through the live pipeline,
then runs the offline session analysis on the whole recording.
"""

import sys
import os
import logging
import argparse
import traceback
from datetime import datetime
from pathlib import Path

import numpy as np

from ecgstream.config.app_config import get_config, ApplicationConfig
from ecgstream.domain.models.ecg_models import Gender
from ecgstream.services.ecg import ECGStreamService, SessionAnalyzerService
from ecgstream.utils.synthetic_ecg import synthetic_ecg


def setup_logging(config: ApplicationConfig) -> bool:
    """Setup logging to stdout and, when enabled, to a timestamped file"""
    handlers = [logging.StreamHandler(sys.stdout)]
    log_file = None

    try:
        if config.log_to_file:
            log_dir = Path(config.log_dir)
            log_dir.mkdir(exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            log_file = log_dir / f"ecgstream_{timestamp}.log"
            handlers.append(logging.FileHandler(log_file, encoding='utf-8'))
            handlers.append(logging.FileHandler(log_dir / "ecgstream_latest.log", mode='w', encoding='utf-8'))

        level = logging.DEBUG if config.debug_mode else getattr(logging, config.log_level.value)
        logging.basicConfig(
            level=level,
            format='%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s',
            handlers=handlers
        )
        if log_file:
            logging.info(f"Logging initialized. Log file: {log_file}")
        return True
    except Exception as e:
        print(f"WARNING: Failed to setup logging: {e}")
        logging.basicConfig(level=logging.INFO)
        return False


def handle_exception(exc_type, exc_value, exc_traceback):
    """Global exception handler for uncaught exceptions"""
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return

    logging.critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback))
    write_crash_report(exc_type, exc_value, exc_traceback)


def write_crash_report(exc_type, exc_value, exc_traceback):
    """Write detailed crash report to file"""
    crash_dir = Path("crash_reports")
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    crash_file = crash_dir / f"crash_{timestamp}.txt"

    try:
        crash_dir.mkdir(exist_ok=True)
        with open(crash_file, 'w', encoding='utf-8') as f:
            f.write("=" * 70 + "\n")
            f.write("ECG STREAM CRASH REPORT\n")
            f.write("=" * 70 + "\n\n")
            f.write(f"Timestamp: {datetime.now().isoformat()}\n")
            f.write(f"Python Version: {sys.version}\n")
            f.write(f"Platform: {sys.platform}\n")
            f.write(f"Working Directory: {os.getcwd()}\n\n")

            f.write("TRACEBACK:\n")
            f.write("-" * 50 + "\n")
            traceback.print_exception(exc_type, exc_value, exc_traceback, file=f)

        logging.info(f"Crash report written to {crash_file}")
    except Exception as e:
        logging.error(f"Failed to write crash report: {e}")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Stream and analyze a single-lead ECG recording")
    parser.add_argument("--input", type=Path, default=None,
                        help="CSV file with one sample per row (first column is used)")
    parser.add_argument("--adc", action="store_true",
                        help="Input holds raw 12-bit ADC counts instead of normalized samples")
    parser.add_argument("--seconds", type=float, default=30.0,
                        help="Length of the synthetic recording when no input is given")
    parser.add_argument("--bpm", type=float, default=72.0,
                        help="Heart rate of the synthetic recording")
    parser.add_argument("--gender", choices=[g.value for g in Gender], default=Gender.MALE.value,
                        help="QT/QTc threshold set")
    parser.add_argument("--age", type=float, default=None,
                        help="Age in years for the session state estimate")
    return parser.parse_args(argv)


def load_samples(args: argparse.Namespace, sample_rate: float) -> np.ndarray:
    """Read the recording from CSV or synthesize one"""
    if args.input is not None:
        samples = np.loadtxt(args.input, delimiter=",", usecols=0, ndmin=1)
        if args.adc:
            samples = np.array([ECGStreamService.normalize_adc(v) for v in samples])
        logging.info(f"Loaded {samples.size} samples from {args.input}")
        return samples

    rr_samples = max(1, int(round(60.0 / args.bpm * sample_rate)))
    n_beats = max(1, int(args.seconds * sample_rate) // rr_samples)
    samples, _ = synthetic_ecg(n_beats, rr_samples, sample_rate, noise_std=0.01, seed=0)
    logging.info(f"Generated {n_beats} synthetic beats at {args.bpm:g} BPM")
    return samples


def run(args: argparse.Namespace, config: ApplicationConfig) -> int:
    gender = Gender(args.gender)
    stream = ECGStreamService(config, gender=gender)
    samples = load_samples(args, stream.sample_rate)

    filtered = []
    step = stream.samples_per_tick
    for start in range(0, samples.size, step):
        for raw in samples[start:start + step]:
            filtered.append(stream.push_sample(float(raw)))
        tick = stream.process_tick()
        if tick.skipped:
            continue
        reading = tick.intervals
        summary = f"t={stream.window.total_samples / stream.sample_rate:6.1f}s peaks={len(tick.r_peaks)}"
        summary += f" bpm={tick.bpm:5.1f} quality={tick.signal_quality.value}"
        if reading is not None:
            marker = "" if reading.fresh else " (held)"
            summary += f" RR={reading.intervals.rr:.0f} QTc={reading.intervals.qtc:.0f}{marker}"
        if tick.physiological_state is not None:
            summary += f" state={tick.physiological_state.state.value}"
        logging.info(summary)

    analyzer = SessionAnalyzerService(stream.sample_rate)
    result = analyzer.analyze_session(np.asarray(filtered), gender=gender, age=args.age)

    logging.info(f"Session {result.duration_label}: {len(result.r_peaks)} beats, "
                 f"HR {result.heart_rate.average:.1f} BPM ({result.heart_rate_status}), "
                 f"{result.irregular_beats} irregular ({result.percent_irregular:.1f}%)")
    logging.info(f"HRV: RMSSD {result.hrv.rmssd:.1f} ms, SDNN {result.hrv.sdnn:.1f} ms, "
                 f"state {result.physiological_state.state.value} "
                 f"({result.physiological_state.confidence:.2f})")
    for abnormality in result.abnormalities:
        logging.info(f"[{abnormality.severity}] {abnormality.type}: {abnormality.description}")
    for recommendation in result.recommendations:
        logging.info(f"Recommendation: {recommendation}")
    return 0


def main(argv=None):
    """Main entry point with error handling"""
    config = get_config()
    setup_logging(config)
    sys.excepthook = handle_exception

    try:
        args = parse_args(argv)
        sys.exit(run(args, config))
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        sys.exit(0)
    except (OSError, ValueError) as e:
        logging.error(f"Failed to process recording: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
