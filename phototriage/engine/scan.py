"""Full-library sensitivity scan: resumable, cancellable, one per process.

Phases::

    IDLE -> SCANNING -> COMPLETED
                     -> INTERRUPTED   (cancelled, or process died mid-run)

A persisted "started" flag that is set without "completed" means the
previous process died mid-scan; that is detected once, at construction,
and reported as INTERRUPTED. Every scan walks the eligible assets
(non-screenshot images) newest first and skips identifiers already in
the Sensitive set, so a restart only pays for the unflagged remainder.
Positive verdicts are written one at a time as they happen.

Already-classified assets are never re-evaluated, even after the
threshold changes; clear the Sensitive set for a true re-evaluation.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from ..classifier.gate import ClassificationGate
from ..library.models import AssetRef, Category
from ..library.source import AssetSource, DecodeError
from ..store.derived_sets import (
    SCAN_COMPLETED,
    SCAN_STARTED,
    SCAN_VERSION,
    DerivedSetStore,
)
from .events import LibrarySignals

logger = logging.getLogger(__name__)

CLASSIFIER_INPUT_SIZE = (224, 224)


class ScanPhase(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    COMPLETED = "completed"
    INTERRUPTED = "interrupted"


@dataclass
class ScanState:
    completed: bool
    version: int
    progress: float
    phase: ScanPhase


@dataclass
class ScanReport:
    """What one run did."""

    total: int = 0
    examined: int = 0
    skipped: int = 0
    classified: int = 0
    flagged: int = 0
    decode_failures: int = 0
    unsaved: List[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def completed(self) -> bool:
        return not self.cancelled and not self.unsaved


class ScanCoordinator:
    """Owns the scan lifecycle and is the only writer of new Sensitive entries."""

    def __init__(
        self,
        source: AssetSource,
        store: DerivedSetStore,
        gate: ClassificationGate,
        signals: Optional[LibrarySignals] = None,
        input_size: Tuple[int, int] = CLASSIFIER_INPUT_SIZE,
    ):
        self.source = source
        self.store = store
        self.gate = gate
        self.signals = signals or LibrarySignals()
        self.input_size = input_size

        self._cancel = threading.Event()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self.last_report: Optional[ScanReport] = None

        completed = store.get_bool(SCAN_COMPLETED)
        started = store.get_bool(SCAN_STARTED)
        if completed:
            self._phase = ScanPhase.COMPLETED
        elif started:
            logger.info("Previous scan was interrupted; it will restart from the unflagged remainder")
            self._phase = ScanPhase.INTERRUPTED
        else:
            self._phase = ScanPhase.IDLE
        self.signals.scan_phase.set(self._phase.value)

    # -- state ----------------------------------------------------------

    @property
    def phase(self) -> ScanPhase:
        return self._phase

    def _set_phase(self, phase: ScanPhase) -> None:
        self._phase = phase
        self.signals.scan_phase.set(phase.value)
        self.signals.is_scanning.set(phase == ScanPhase.SCANNING)

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def state(self) -> ScanState:
        return ScanState(
            completed=self.store.get_bool(SCAN_COMPLETED),
            version=self.store.get_int(SCAN_VERSION),
            progress=self.signals.scan_progress.value,
            phase=self._phase,
        )

    # -- lifecycle ------------------------------------------------------

    def start_if_needed(self) -> bool:
        """Start a background scan unless one is running or the last one completed."""
        with self._lock:
            if self.is_running or self._phase == ScanPhase.COMPLETED:
                logger.debug(f"Scan not started: phase={self._phase.value}, running={self.is_running}")
                return False
            self._launch()
            return True

    def restart(self, timeout: Optional[float] = 30.0) -> bool:
        """Manual re-scan: clear completion and start again, even after a completed run."""
        logger.info("Manual scan requested")
        if self.is_running:
            self.cancel()
            if not self.wait(timeout):
                logger.warning("Running scan did not stop in time; manual restart skipped")
                return False

        with self._lock:
            if self.is_running:
                return False
            self.store.set_bool(SCAN_COMPLETED, False)
            self.store.set_bool(SCAN_STARTED, False)
            self._phase = ScanPhase.IDLE
            self._launch()
            return True

    def cancel(self) -> None:
        """Cooperative: the loop stops between items."""
        self._cancel.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Join the background thread; True once no scan is running."""
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
        return not self.is_running

    def _launch(self) -> None:
        self._cancel.clear()
        self._set_phase(ScanPhase.SCANNING)
        self.signals.scan_progress.set(0.0)
        self._thread = threading.Thread(target=self._run_guarded, name="sensitivity-scan", daemon=True)
        self._thread.start()

    def _run_guarded(self) -> None:
        try:
            self.run()
        except Exception:
            logger.exception("Sensitivity scan crashed")
            self._set_phase(ScanPhase.INTERRUPTED)

    # -- the scan itself ------------------------------------------------

    def run(self) -> ScanReport:
        """Run one scan on the calling thread."""
        if threading.current_thread() is not self._thread:
            self._cancel.clear()
        report = ScanReport()
        self._set_phase(ScanPhase.SCANNING)
        self.signals.scan_progress.set(0.0)

        if not self.source.authorization_status().can_read:
            logger.warning("Scan skipped: library not accessible")
            self._set_phase(ScanPhase.IDLE)
            self.last_report = report
            return report

        self.store.set_bool(SCAN_COMPLETED, False)
        self.store.set_bool(SCAN_STARTED, True)

        assets = self.source.fetch(Category.PHOTOS)
        report.total = len(assets)
        logger.info(f"Starting sensitivity scan for {report.total} images")

        for index, asset in enumerate(assets):
            if self._cancel.is_set():
                report.cancelled = True
                break

            report.examined += 1
            if self.store.is_sensitive(asset.identifier):
                report.skipped += 1
            else:
                self._classify_one(asset, report)

            self.signals.scan_progress.set((index + 1) / report.total)

        if report.unsaved and self.store.sync():
            report.unsaved = []

        if report.completed:
            version = self.store.get_int(SCAN_VERSION) + 1
            self.store.set_int(SCAN_VERSION, version)
            self.store.set_bool(SCAN_COMPLETED, True)
            self.signals.scan_progress.set(1.0)
            self._set_phase(ScanPhase.COMPLETED)
            self.signals.bump_counts_version()
            logger.info(
                f"Scan complete: {report.classified} classified, {report.skipped} skipped, "
                f"{report.flagged} flagged (version {version})"
            )
        else:
            self._set_phase(ScanPhase.INTERRUPTED)
            logger.info(
                f"Scan stopped after {report.examined}/{report.total} "
                f"({report.flagged} flagged, {len(report.unsaved)} unsaved)"
            )

        self.last_report = report
        return report

    def _classify_one(self, asset: AssetRef, report: ScanReport) -> None:
        try:
            image = self.source.decode(asset, self.input_size)
        except DecodeError as e:
            report.decode_failures += 1
            logger.debug(str(e))
            return

        verdict = self.gate.evaluate(image)
        report.classified += 1
        if not verdict.sensitive:
            return

        persisted = self.store.add_sensitive(asset.identifier, verdict.probability)

        # A flush during inference purges before this insert lands
        if not self.source.fetch_by_ids([asset.identifier]):
            logger.info(f"{asset.identifier} was removed while being classified; not flagging")
            self.store.remove_sensitive([asset.identifier])
            return

        report.flagged += 1
        if not persisted:
            report.unsaved.append(asset.identifier)
        logger.info(f"Flagged {asset.identifier} (total flagged this run: {report.flagged})")
