from collections import OrderedDict, deque

from config.settings import ANOMALY_HISTORY_MAX_KEYS, ANOMALY_HISTORY_SIZE


class ReadingHistory:
    """
    Recent (timestamp, value) samples per (device_id, data_type), used for
    rate-of-change checks. Each key keeps at most `max_size` samples and the
    oldest are evicted first; at most `max_keys` keys are tracked, the least
    recently updated key is dropped first.
    """

    def __init__(self, max_size: int = ANOMALY_HISTORY_SIZE, max_keys: int = ANOMALY_HISTORY_MAX_KEYS):
        if max_size < 1 or max_keys < 1:
            raise ValueError("History bounds must be positive")
        self.max_size = max_size
        self.max_keys = max_keys
        self._samples = OrderedDict()

    def append(self, key, timestamp: int, value: float):
        """Stores a sample and returns the one recorded before it for the same key, if any."""
        samples = self._samples.get(key)
        if samples is None:
            samples = deque(maxlen=self.max_size)
            self._samples[key] = samples
            while len(self._samples) > self.max_keys:
                self._samples.popitem(last=False)
        else:
            self._samples.move_to_end(key)

        previous = samples[-1] if samples else None
        samples.append((timestamp, value))
        return previous

    def samples(self, key) -> list:
        return list(self._samples.get(key, ()))

    def __contains__(self, key):
        return key in self._samples

    def __len__(self):
        return len(self._samples)
