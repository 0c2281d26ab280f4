"""
GeoIP database refresher.

A background thread that mostly sleeps, and periodically runs geoipupdate to
fetch fresh GeoLite2 databases. After a successful update it reopens the
provider pair and signals the enricher, which reopens its handles before the
next event it handles.
"""

import logging
import queue
import subprocess
import threading
import time
from typing import Any, Dict, List, Optional

from ..config import GEOIP_UPDATE_PERIOD, GEOIP_RETRY_PERIOD, GEOIPUPDATE_CONFIG, GEOIPUPDATE_DIR
from ..services.prometheus_metrics import prometheus_metrics
from .errors import RefreshFailure
from .providers import ProviderPair

logger = logging.getLogger("enrich.refresher")

WAITING = "waiting"
REFRESHING = "refreshing"


class ReloadSignal:
    """
    Single-slot "providers changed" notification.

    notify() never blocks: if a reload is already pending the new one is
    dropped, since one reopen always picks up the latest files.
    """

    def __init__(self):
        self._slot: queue.Queue = queue.Queue(maxsize=1)

    def notify(self) -> bool:
        try:
            self._slot.put_nowait(True)
            return True
        except queue.Full:
            logger.debug("Reload already pending, signal dropped", extra={
                "component": "enrich.refresher",
                "event": "signal_dropped"
            })
            return False

    def consume(self) -> bool:
        """Take the pending signal, if any, without waiting"""
        try:
            self._slot.get_nowait()
            return True
        except queue.Empty:
            return False

    def pending(self) -> bool:
        return not self._slot.empty()


class ProviderRefresher:
    """Runs geoipupdate on a schedule; failures retry on a short interval"""

    def __init__(self,
                 providers: ProviderPair,
                 reload_signal: ReloadSignal,
                 update_period: float = GEOIP_UPDATE_PERIOD,
                 retry_period: float = GEOIP_RETRY_PERIOD,
                 config_file: str = GEOIPUPDATE_CONFIG,
                 workdir: str = GEOIPUPDATE_DIR):
        self.providers = providers
        self.reload_signal = reload_signal
        self.update_period = update_period
        self.retry_period = retry_period
        self.config_file = config_file
        self.workdir = workdir

        self.interval = update_period
        self.state = WAITING
        self.last_success: Optional[float] = None
        self.last_error: Optional[str] = None
        self.failures = 0

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def command(self) -> List[str]:
        return ["geoipupdate", "-f", self.config_file, "-d", "."]

    def run_update(self) -> str:
        """Run geoipupdate, returning its combined stdout/stderr"""
        try:
            return subprocess.check_output(
                self.command, cwd=self.workdir, stderr=subprocess.STDOUT, text=True
            )
        except subprocess.CalledProcessError as e:
            raise RefreshFailure(f"geoipupdate exited with status {e.returncode}", e.output or "") from e
        except OSError as e:
            raise RefreshFailure(f"cannot run geoipupdate: {e}") from e

    def refresh(self) -> bool:
        """One update attempt. Sets the next wait interval and returns True on success."""
        self.state = REFRESHING
        logger.info("Running GeoIP update...", extra={"component": "enrich.refresher"})

        try:
            output = self.run_update()
        except RefreshFailure as e:
            logger.error(f"Update error: {e}", extra={
                "component": "enrich.refresher",
                "event": "update_failed"
            })
            logger.error(f"geoipupdate: {e.output.strip()}", extra={
                "component": "enrich.refresher",
                "event": "update_output"
            })
            # Failed: retry sooner than the long period, keep serving the old databases
            self.interval = self.retry_period
            self.last_error = str(e)
            self.failures += 1
            self.state = WAITING
            prometheus_metrics.increment_refresh("failure")
            return False

        logger.info("GeoIP updated, success.", extra={
            "component": "enrich.refresher",
            "event": "updated",
            "output": output.strip()
        })

        self.interval = self.update_period
        self.last_success = time.time()
        self.last_error = None

        self.providers.reopen()
        self.reload_signal.notify()

        self.state = WAITING
        prometheus_metrics.increment_refresh("success")
        prometheus_metrics.set_last_refresh(self.last_success)
        return True

    def run(self):
        """Refresher loop. Only returns once stop() is called."""
        logger.info("GeoIP refresher started", extra={
            "component": "enrich.refresher",
            "interval": self.interval
        })

        while not self._stop.wait(self.interval):
            try:
                self.refresh()
            except Exception as e:
                logger.exception("Refresher loop error", extra={
                    "component": "enrich.refresher",
                    "error": str(e)
                })
                self.interval = self.retry_period
                self.state = WAITING

    def start(self):
        if self._thread and self._thread.is_alive():
            logger.warning("GeoIP refresher already running", extra={"component": "enrich.refresher"})
            return

        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name="geoip-refresher", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0):
        self._stop.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout)
            if self._thread.is_alive():
                # Still inside geoipupdate; start() must not spawn a second thread
                logger.warning("GeoIP refresher did not stop within timeout", extra={
                    "component": "enrich.refresher",
                    "timeout": timeout
                })
                return
        self._thread = None

    def get_status(self) -> Dict[str, Any]:
        return {
            "state": self.state,
            "interval": self.interval,
            "last_success": self.last_success,
            "last_error": self.last_error,
            "failures": self.failures,
            "reload_pending": self.reload_signal.pending()
        }
