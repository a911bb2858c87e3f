"""Background scheduler driving periodic evaluation passes."""
import logging
import threading
import schedule
import time

logger = logging.getLogger("alertengine.scheduler")


class EvaluationScheduler:
    def __init__(self, evaluator, interval_seconds=30):
        self.evaluator = evaluator
        self.interval = interval_seconds
        self._scheduler = schedule.Scheduler()
        self._thread = None
        self._running = False
        self._stop = threading.Event()
        self._callbacks = []
        self._consecutive_failures = 0

    def on_pass(self, callback):
        """Register callback called with the PassReport after each pass."""
        self._callbacks.append(callback)

    def start(self):
        """Start evaluating in a background thread."""
        if self._running:
            return
        self._running = True
        self._stop.clear()

        self._scheduler.every(self.interval).seconds.do(self._tick)

        self._thread = threading.Thread(target=self._run_loop, name="alert-scheduler", daemon=True)
        self._thread.start()
        logger.info(f"Scheduler started (every {self.interval}s)")

    def stop(self):
        """Stop evaluating; in-flight dispatches are left to finish."""
        self._running = False
        self._stop.set()
        self._scheduler.clear()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
        logger.info("Scheduler stopped")

    def run_forever(self):
        """Start and block until interrupted."""
        self.start()
        try:
            while self._running:
                time.sleep(0.5)
        except KeyboardInterrupt:
            logger.info("Interrupted")
        finally:
            self.stop()

    def _run_loop(self):
        # Evaluate immediately rather than waiting a full interval
        self._tick()
        while not self._stop.is_set():
            self._scheduler.run_pending()
            self._stop.wait(min(1.0, self.interval))

    def _tick(self):
        try:
            report = self.evaluator.run_once()
        except Exception as e:
            self._consecutive_failures += 1
            logger.error(f"Evaluation pass failed ({self._consecutive_failures} consecutive): {e}", exc_info=True)
            if self._consecutive_failures >= 5:
                logger.critical("5+ consecutive evaluation failures - alerting is degraded")
            return None

        self._consecutive_failures = 0
        for cb in self._callbacks:
            try:
                cb(report)
            except Exception as e:
                logger.warning(f"Pass callback error: {e}")
        return report
