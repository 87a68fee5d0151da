"""
Application-wide constants.
"""

# Application metadata
APP_NAME = "ECG Stream"
APP_VERSION = "1.0.0"

# Acquisition
DEFAULT_SAMPLE_RATE = 360  # Hz
ROLLING_WINDOW_SIZE = 1000  # samples, ~2.78 s at 360 Hz
POLL_INTERVAL_MS = 200  # detection cadence
RAW_ADC_MIDPOINT = 2048  # 12-bit ADC centre, raw -> [-1, 1]

# Signal quality gates
MIN_SIGNAL_AMPLITUDE = 0.05
MIN_SIGNAL_VARIANCE = 0.0002
NO_SIGNAL_MEAN_SQUARE = 0.0001
POOR_SIGNAL_AMPLITUDE = 0.15
POOR_SIGNAL_MEAN_SQUARE = 0.003

# Physiological RR bounds (ms)
MIN_RR_MS = 300
MAX_RR_MS = 2000
MAX_BEAT_RR_MS = 1500

# HRV
RR_HISTORY_CAPACITY = 300  # ~5 minutes at 60 BPM
MIN_HRV_STATE_SAMPLES = 30
MIN_TRIANGULAR_SAMPLES = 20
TRIANGULAR_BIN_MS = 7.8125  # 1/128 s
NN50_THRESHOLD_MS = 50

# Heart rate tracking
BPM_REFRACTORY_MS = 300
BPM_BUFFER_SIZE = 10
BPM_SMOOTHING_ALPHA = 0.1
BPM_UPDATE_INTERVAL_MS = 1000
BPM_TRIM_MIN_INTERVALS = 8
BPM_TRIM_FRACTION = 0.1

# Beat classifier input
BEAT_WINDOW_LENGTH = 135  # ~375 ms at 360 Hz
FLAT_SIGNAL_STD_THRESHOLD = 0.005
MIN_CLASSIFIER_CONFIDENCE = 0.4
AAMI_CLASSES = ["Normal", "Supraventricular", "Ventricular", "Fusion", "Other"]
DEVICE_BIAS_CORRECTION = [1.4, 0.9, 1.0, 0.8, 0.7]

# Limits
AMPLITUDE_EPSILON = 1e-6
