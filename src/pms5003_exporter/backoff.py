INITIAL_INTERVAL = 0.5  # seconds
MAX_INTERVAL = 5.0
MULTIPLIER = 2.0


class ExponentialBackoff:
    """
    Retry delay doubling after each consecutive failure, up to a ceiling.
    There is no cap on total elapsed time: the caller retries until stopped.
    """

    def __init__(self, initial=INITIAL_INTERVAL, maximum=MAX_INTERVAL, multiplier=MULTIPLIER):
        if initial <= 0 or maximum < initial:
            raise ValueError(f"Invalid backoff bounds: initial={initial}, maximum={maximum}")
        self.initial = initial
        self.maximum = maximum
        self.multiplier = multiplier
        self.current = initial

    def next_interval(self) -> float:
        """Return the interval to wait now and grow the next one."""
        interval = self.current
        self.current = min(self.current * self.multiplier, self.maximum)
        return interval

    def reset(self):
        self.current = self.initial

    def __repr__(self):
        return f"ExponentialBackoff(current={self.current}, initial={self.initial}, maximum={self.maximum})"
