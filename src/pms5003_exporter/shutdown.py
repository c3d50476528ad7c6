import logging
import signal
import threading

logger = logging.getLogger(__name__)


class Shutdown:
    """
    Process-wide stop request.

    Backed by a single threading.Event: once set it stays set, so a task
    subscribing late still sees it. Long running tasks poll it, nobody is
    interrupted from the outside.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.RLock()
        self.reason = None

    @property
    def event(self) -> threading.Event:
        return self._event

    def trigger(self, reason="requested"):
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
        logger.info("Shutting down (%s)", reason)

    def is_set(self):
        return self._event.is_set()

    def wait(self, timeout=None):
        return self._event.wait(timeout)

    def install_signal_handlers(self):
        """Route SIGTERM and SIGINT to trigger(). Must run on the main thread."""
        def handler(signum, frame):
            self.trigger(signal.Signals(signum).name.lower())

        signal.signal(signal.SIGTERM, handler)
        signal.signal(signal.SIGINT, handler)

    def run_task(self, name, target, *args):
        """
        Run target in a non-daemon thread. The process is shut down as soon as
        the task ends, whether it returned or raised.
        """
        def runner():
            try:
                target(*args)
            except Exception:
                logger.exception("Task %s failed", name)
            finally:
                self.trigger(f"{name} exit")

        thread = threading.Thread(target=runner, name=name)
        thread.start()
        return thread
