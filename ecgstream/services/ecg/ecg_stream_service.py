"""
ECG Stream Service

Real-time coordination of the ECG core. Raw samples are filtered into a
rolling window as they arrive; every processing tick runs R-peak, PQRST,
interval, HRV and heart-rate analysis over the current window.
Designed along Clean Architecture and SOLID lines.
"""

from typing import List, Optional, Sequence, Tuple
import logging

import numpy as np

from ecgstream.config import constants
from ecgstream.config.app_config import ApplicationConfig
from ecgstream.domain.models.ecg_models import (
    Gender, SignalQuality, TickResult, FiducialPoint, IntervalReading
)
from ecgstream.services.ecg.filter_chain_service import FilterChainService
from ecgstream.services.ecg.qrs_detector_service import QRSDetectorService
from ecgstream.services.ecg.rpeak_detector_service import RPeakDetectorService
from ecgstream.services.ecg.pqrst_detector_service import PQRSTDetectorService
from ecgstream.services.ecg.interval_calculator_service import IntervalCalculatorService
from ecgstream.services.ecg.hrv_calculator_service import HRVCalculatorService

logger = logging.getLogger(__name__)


class RollingWindow:
    """
    Fixed-capacity ring buffer of filtered samples.

    A parallel buffer maps every slot to the absolute sample index since
    stream start. Storage never grows; absolute indices never decrease.
    """

    def __init__(self, capacity: int = constants.ROLLING_WINDOW_SIZE):
        if capacity <= 0:
            raise ValueError("Capacity must be positive")
        self.capacity = int(capacity)
        self._samples = np.zeros(self.capacity, dtype=float)
        self._absolute = np.full(self.capacity, -1, dtype=np.int64)
        self._write_index = 0
        self._total = 0

    def append(self, sample: float) -> None:
        self._samples[self._write_index] = sample
        self._absolute[self._write_index] = self._total
        self._write_index = (self._write_index + 1) % self.capacity
        self._total += 1

    def extend(self, samples: Sequence[float]) -> None:
        for sample in samples:
            self.append(sample)

    def snapshot(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Chronologically ordered copy of the stored samples.

        Returns:
            Tuple[np.ndarray, np.ndarray]: (samples, absolute indices);
            only filled slots are returned before the first wrap
        """
        if self._total < self.capacity:
            return self._samples[:self._total].copy(), self._absolute[:self._total].copy()
        order = np.roll(np.arange(self.capacity), -self._write_index)
        return self._samples[order], self._absolute[order]

    @property
    def oldest_absolute_index(self) -> int:
        """Absolute index of snapshot()[0]."""
        return max(0, self._total - self.capacity)

    @property
    def total_samples(self) -> int:
        return self._total

    def __len__(self) -> int:
        return min(self._total, self.capacity)

    def reset(self) -> None:
        self._samples.fill(0.0)
        self._absolute.fill(-1)
        self._write_index = 0
        self._total = 0


class HeartRateTracker:
    """
    Smoothed heart rate from R-peak absolute positions.

    Peaks closer than the refractory period to the last accepted one are
    ignored, so the same beat seen by overlapping ticks counts once.
    """

    def __init__(self, sample_rate: float = constants.DEFAULT_SAMPLE_RATE,
                 update_interval_ms: float = constants.BPM_UPDATE_INTERVAL_MS):
        self.sample_rate = float(sample_rate)
        self._refractory = int(constants.BPM_REFRACTORY_MS / 1000 * self.sample_rate)
        self._update_interval = int(update_interval_ms / 1000 * self.sample_rate)
        self._timestamps_ms: List[float] = []
        self._last_accepted: Optional[int] = None
        self._last_update: Optional[int] = None
        self._bpm = 0.0

    @property
    def bpm(self) -> float:
        return self._bpm

    def add_peak(self, absolute_index: int) -> bool:
        """
        Record one R-peak.

        Args:
            absolute_index: Absolute sample index of the peak

        Returns:
            bool: True if accepted as a new beat
        """
        if self._last_accepted is not None and absolute_index - self._last_accepted < self._refractory:
            return False
        self._last_accepted = int(absolute_index)
        self._timestamps_ms.append(absolute_index / self.sample_rate * 1000)
        del self._timestamps_ms[:-constants.BPM_BUFFER_SIZE]
        return True

    def update(self, now_sample: int, quality: SignalQuality = SignalQuality.GOOD) -> float:
        """
        Refresh the smoothed BPM.

        Poor signal freezes the value and no signal reports 0 without
        discarding it; updates are rate limited on the stream clock.

        Args:
            now_sample: Current absolute sample count
            quality: Current signal quality

        Returns:
            float: Smoothed BPM (0 until two beats are seen)
        """
        if quality == SignalQuality.NO_SIGNAL:
            return 0.0
        if quality != SignalQuality.GOOD or len(self._timestamps_ms) < 2:
            return self._bpm
        if self._last_update is not None and now_sample - self._last_update < self._update_interval:
            return self._bpm

        rr = np.diff(self._timestamps_ms)
        rr = rr[(rr >= constants.MIN_RR_MS) & (rr <= constants.MAX_BEAT_RR_MS)]
        if rr.size == 0:
            return self._bpm

        rr = np.sort(rr)
        trim = int(rr.size * constants.BPM_TRIM_FRACTION) if rr.size >= constants.BPM_TRIM_MIN_INTERVALS else 0
        if trim > 0:
            rr = rr[trim:rr.size - trim]
        instant = 60000.0 / float(np.mean(rr))

        if self._bpm == 0:
            self._bpm = instant
        else:
            self._bpm += constants.BPM_SMOOTHING_ALPHA * (instant - self._bpm)
        self._last_update = int(now_sample)
        return self._bpm

    def reset(self) -> None:
        self._timestamps_ms.clear()
        self._last_accepted = None
        self._last_update = None
        self._bpm = 0.0


class ECGStreamService:
    """
    Streaming ECG pipeline.

    Single-owner and synchronous: push samples in acquisition order and
    call process_tick() on the polling cadence. Not thread-safe.
    """

    def __init__(self, config: Optional[ApplicationConfig] = None,
                 gender: Optional[Gender] = None):
        """
        ECGStreamService constructor.

        Args:
            config: Application configuration, defaults when None
            gender: QT/QTc threshold set (overrides config)
        """
        self._config = config or ApplicationConfig()
        stream = self._config.stream
        self.sample_rate = float(stream.sample_rate)

        self.filter_chain = FilterChainService(self.sample_rate, self._config.filters)
        self.window = RollingWindow(stream.window_size)
        self.rpeak_detector = RPeakDetectorService(self._config.rpeak)
        self.qrs_detector = QRSDetectorService(self.sample_rate, config=self._config.qrs)
        self.pqrst_detector = PQRSTDetectorService(self.sample_rate)
        self.interval_calculator = IntervalCalculatorService(
            self.sample_rate, gender=gender, config=self._config.intervals
        )
        self.hrv_calculator = HRVCalculatorService(self._config.hrv)
        self.heart_rate = HeartRateTracker(self.sample_rate, stream.bpm_update_interval_ms)

        self._min_rr_samples = int(constants.MIN_RR_MS / 1000 * self.sample_rate)
        self._last_rr_peak: Optional[int] = None
        self._tick_count = 0
        logger.info(
            f"ECGStreamService initialized ({self.sample_rate:g} Hz, window {stream.window_size})"
        )

    @property
    def samples_per_tick(self) -> int:
        """Samples acquired between two ticks at the configured cadence."""
        return max(1, int(self._config.stream.poll_interval_ms / 1000 * self.sample_rate))

    def push_sample(self, raw: float) -> float:
        """
        Filter one normalized sample into the rolling window.

        Args:
            raw: Normalized sample (about [-1, 1])

        Returns:
            float: Stored filtered sample
        """
        filtered = self.filter_chain.process(raw)
        self.window.append(filtered)
        return filtered

    def push_samples(self, raws: Sequence[float]) -> None:
        for raw in raws:
            self.push_sample(raw)

    @staticmethod
    def normalize_adc(raw: int) -> float:
        """12-bit ADC count to a normalized sample."""
        return (raw - constants.RAW_ADC_MIDPOINT) / constants.RAW_ADC_MIDPOINT

    def assess_signal_quality(self, samples: Optional[np.ndarray] = None) -> SignalQuality:
        """
        Coarse live signal quality from peak amplitude and mean square.

        Args:
            samples: Samples to assess, the current window when None

        Returns:
            SignalQuality: no-signal, poor or good
        """
        if samples is None:
            samples, _ = self.window.snapshot()
        if len(samples) == 0:
            return SignalQuality.NO_SIGNAL

        max_abs = float(np.max(np.abs(samples)))
        mean_square = float(np.mean(np.square(samples)))
        if max_abs < constants.MIN_SIGNAL_AMPLITUDE or mean_square < constants.NO_SIGNAL_MEAN_SQUARE:
            return SignalQuality.NO_SIGNAL
        if max_abs < constants.POOR_SIGNAL_AMPLITUDE or mean_square < constants.POOR_SIGNAL_MEAN_SQUARE:
            return SignalQuality.POOR
        return SignalQuality.GOOD

    def process_tick(self) -> TickResult:
        """
        Analyze the current rolling window.

        Returns:
            TickResult: Peaks, points, intervals, HRV and heart rate; an
            empty result flagged skipped for a weak or flat window
        """
        self._tick_count += 1
        samples, absolute = self.window.snapshot()
        quality = self.assess_signal_quality(samples)

        if not self._passes_quality_gate(samples):
            logger.debug(f"Tick {self._tick_count}: signal too weak or flat, skipped")
            return TickResult(signal_quality=quality, skipped=True)

        try:
            offset = self.window.oldest_absolute_index
            peaks = self._detect_peaks(samples)
            points = self._detect_points(samples, peaks, offset)
            absolute_peaks = [int(absolute[p]) for p in peaks]

            hrv = None
            if len(absolute_peaks) >= 2:
                self._feed_rr(absolute_peaks)
                hrv = self.hrv_calculator.get_all_metrics()

            for peak in absolute_peaks:
                self.heart_rate.add_peak(peak)
            bpm = self.heart_rate.update(self.window.total_samples, quality)

            reading: Optional[IntervalReading] = None
            intervals_valid = True
            if points:
                reading = self.interval_calculator.calculate_intervals(points)
                if reading is not None and not self.interval_calculator.validate_intervals(reading.intervals):
                    logger.debug(f"Tick {self._tick_count}: intervals rejected")
                    reading = None
                    intervals_valid = False

            result = TickResult(
                r_peaks=list(peaks),
                absolute_r_peaks=absolute_peaks,
                points=points,
                intervals=reading,
                intervals_valid=intervals_valid,
                hrv=hrv,
                physiological_state=self.hrv_calculator.get_physiological_state(),
                bpm=bpm,
                signal_quality=quality,
            )
            logger.debug(
                f"Tick {self._tick_count}: {len(peaks)} peaks, {len(points)} points, BPM {bpm:.1f}"
            )
            return result

        except Exception as e:
            logger.error(f"Error processing tick {self._tick_count}: {str(e)}")
            return TickResult(signal_quality=quality, skipped=True)

    def reset(self) -> None:
        """Reset every stateful component; call at session start."""
        self.filter_chain.reset()
        self.window.reset()
        self.qrs_detector.reset()
        self.interval_calculator.reset()
        self.hrv_calculator.reset()
        self.heart_rate.reset()
        self._last_rr_peak = None
        self._tick_count = 0
        logger.info("ECG stream reset")

    def _passes_quality_gate(self, samples: np.ndarray) -> bool:
        if len(samples) == 0:
            return False
        stream = self._config.stream
        return (float(np.max(np.abs(samples))) >= stream.min_signal_amplitude
                and float(np.var(samples)) >= stream.min_signal_variance)

    def _detect_peaks(self, samples: np.ndarray) -> List[int]:
        if self._config.stream.use_qrs_detector:
            return self.qrs_detector.detect_qrs(samples)
        return self.rpeak_detector.detect(samples, self.sample_rate)

    def _detect_points(self, samples: np.ndarray, peaks: List[int],
                       offset: int) -> List[FiducialPoint]:
        points: List[FiducialPoint] = []
        if peaks:
            points = self.pqrst_detector.detect_waves(samples, peaks, offset)
        if not points:
            points = self.pqrst_detector.detect_direct_waves(samples, offset)
        return points

    def _feed_rr(self, absolute_peaks: List[int]) -> None:
        """Add RR intervals of beat pairs not yet counted by earlier ticks."""
        for previous, current in zip(absolute_peaks[:-1], absolute_peaks[1:]):
            if self._last_rr_peak is not None and current - self._last_rr_peak < self._min_rr_samples:
                continue
            self.hrv_calculator.add_rr_interval((current - previous) / self.sample_rate * 1000)
            self._last_rr_peak = current
