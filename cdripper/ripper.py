"""
CD Ripper Engine
Handles disc detection, the per-disc workflow and the poll loop
"""

import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Dict

from . import activity
from .config import Configuration, DEFAULT_SETTINGS
from .notifier import Notifier
from .parsers import AlbumIdentity
from .stages import (
    DriveCalibration,
    OffsetCalibrator,
    Relocator,
    RipperStage,
    StageOutcome,
    StageResult,
    TaggerStage,
)
from .tools import Beets, Drive, Whipper


class WorkflowState(Enum):
    IDLE = "idle"
    DETECTED = "detected"
    CALIBRATING = "calibrating"
    RIPPING = "ripping"
    TAGGING = "tagging"
    RELOCATING = "relocating"
    REPORTING = "reporting"
    EJECTING = "ejecting"


# (state, outcome of that state's step) -> next state
TRANSITIONS: Dict[tuple, WorkflowState] = {
    (WorkflowState.DETECTED, StageOutcome.SUCCESS): WorkflowState.CALIBRATING,
    (WorkflowState.DETECTED, StageOutcome.SKIPPED): WorkflowState.RIPPING,
    (WorkflowState.CALIBRATING, StageOutcome.SUCCESS): WorkflowState.RIPPING,
    (WorkflowState.RIPPING, StageOutcome.SUCCESS): WorkflowState.TAGGING,
    (WorkflowState.RIPPING, StageOutcome.FATAL): WorkflowState.EJECTING,
    (WorkflowState.TAGGING, StageOutcome.SUCCESS): WorkflowState.RELOCATING,
    (WorkflowState.TAGGING, StageOutcome.RECOVERABLE): WorkflowState.RELOCATING,
    (WorkflowState.RELOCATING, StageOutcome.SUCCESS): WorkflowState.REPORTING,
    (WorkflowState.RELOCATING, StageOutcome.FATAL): WorkflowState.EJECTING,
    (WorkflowState.REPORTING, StageOutcome.SUCCESS): WorkflowState.EJECTING,
}


def next_state(state: WorkflowState, outcome: StageOutcome) -> WorkflowState:
    """Look up the transition. Unlisted failures go straight to ejecting."""
    return TRANSITIONS.get((state, outcome), WorkflowState.EJECTING)


@dataclass
class DiscSession:
    """One disc-processing attempt"""
    id: str = ""
    workspace: str = ""
    state: WorkflowState = WorkflowState.IDLE
    stage_result: Optional[StageResult] = None
    identity: Optional[AlbumIdentity] = None
    destination: str = ""
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    ejected: bool = False

    @property
    def succeeded(self) -> bool:
        """The attempt reached the library and was reported"""
        return bool(self.destination) and self.stage_result is not None and self.stage_result.ok

    def to_dict(self):
        """Convert to dictionary for JSON serialization"""
        return {
            "id": self.id,
            "workspace": self.workspace,
            "state": self.state.value,
            "stage_result": self.stage_result.to_dict() if self.stage_result else None,
            "identity": self.identity.to_dict() if self.identity else None,
            "destination": self.destination,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "ejected": self.ejected,
        }


class RipEngine:
    """Main ripping engine - polls the drive and runs the disc workflow"""

    def __init__(self, config: Configuration, settings: dict = None,
                 whipper: Whipper = None, beets: Beets = None,
                 drive: Drive = None, notifier: Notifier = None):
        settings = settings or DEFAULT_SETTINGS
        timeouts = settings.get('timeouts', {})
        polling = settings.get('polling', {})

        self.config = config
        self.idle_backoff = polling.get('idle_backoff', 3)
        self.settle_backoff = polling.get('settle_backoff', 5)

        self.whipper = whipper or Whipper(
            probe_timeout=timeouts.get('probe', 60),
            rip_timeout=timeouts.get('rip', 7200)
        )
        self.beets = beets or Beets(import_timeout=timeouts.get('tag', 1800))
        self.drive = drive or Drive(
            device=settings.get('drive', {}).get('device', ''),
            timeout=timeouts.get('eject', 30)
        )
        self.notifier = notifier or Notifier(config.webhook_url, timeout=timeouts.get('webhook', 10))

        # Owned here, shared across sessions for the life of the process
        self.calibration = DriveCalibration()

        self.calibrator = OffsetCalibrator(self.whipper, self.notifier, self.calibration)
        self.ripper = RipperStage(self.whipper)
        self.tagger = TaggerStage(self.beets)
        self.relocator = Relocator()

        self.state = WorkflowState.IDLE
        self.current_session: Optional[DiscSession] = None
        self.last_session: Optional[DiscSession] = None
        self.attempts = 0
        self.successes = 0
        self._lock = threading.Lock()

    # ---------- status ----------

    def _set_state(self, state: WorkflowState):
        with self._lock:
            self.state = state
            if self.current_session:
                self.current_session.state = state

    def get_status(self) -> dict:
        """Snapshot for the status API"""
        with self._lock:
            return {
                "state": self.state.value,
                "drive_offset": self.calibration.offset,
                "current": self.current_session.to_dict() if self.current_session else None,
                "last": self.last_session.to_dict() if self.last_session else None,
                "attempts": self.attempts,
                "successes": self.successes,
                "temp_dir": str(self.config.temp_dir),
                "final_dest": str(self.config.final_dest),
                "notifications": self.notifier.enabled,
            }

    # ---------- poll loop ----------

    def disc_present(self) -> bool:
        return self.whipper.cd_info().success

    def poll_once(self) -> bool:
        """Probe the drive and process the disc if one is present.

        Returns True if an attempt was made.
        """
        if not self.disc_present():
            return False

        self.process_disc()
        return True

    def run(self):
        """Poll forever. Only process termination ends the loop."""
        while True:
            try:
                processed = self.poll_once()
            except Exception as e:
                activity.log_error(f"Unexpected error while polling: {e}")
                processed = False

            # Failed attempts retry on the short backoff
            succeeded = processed and self.last_session is not None and self.last_session.succeeded
            time.sleep(self.settle_backoff if succeeded else self.idle_backoff)

    # ---------- one attempt ----------

    def _step(self, state: WorkflowState, session: DiscSession) -> StageResult:
        """Run the work for one state and return its result"""
        if state == WorkflowState.DETECTED:
            activity.disc_detected()
            if self.calibration.calibrated:
                return StageResult(StageOutcome.SKIPPED)
            return StageResult(StageOutcome.SUCCESS)

        if state == WorkflowState.CALIBRATING:
            self.calibrator.calibrate()
            return StageResult(StageOutcome.SUCCESS)

        if state == WorkflowState.RIPPING:
            return self.ripper.rip(Path(session.workspace), self.calibration.offset or 0)

        if state == WorkflowState.TAGGING:
            return self.tagger.tag(Path(session.workspace))

        if state == WorkflowState.RELOCATING:
            result = self.relocator.relocate(Path(session.workspace), self.config.final_dest)
            session.identity = result.identity
            session.destination = result.destination
            return result

        if state == WorkflowState.REPORTING:
            identity = session.identity or AlbumIdentity()
            self.notifier.notify_success(identity)
            activity.save_rip_to_history(
                identity.artist, identity.album, identity.year,
                destination=session.destination,
                drive_offset=self.calibration.offset or 0
            )
            with self._lock:
                self.successes += 1
            return StageResult(StageOutcome.SUCCESS, identity=identity, destination=session.destination)

        raise ValueError(f"No step for state {state.value}")

    def process_disc(self) -> DiscSession:
        """Run one attempt from detection to eject"""
        session = DiscSession(
            id=uuid.uuid4().hex[:8],
            workspace=str(self.config.temp_dir),
            started_at=datetime.now().isoformat(),
        )
        with self._lock:
            self.current_session = session
            self.attempts += 1

        state = WorkflowState.DETECTED
        try:
            while state != WorkflowState.EJECTING:
                self._set_state(state)
                try:
                    result = self._step(state, session)
                except Exception as e:
                    activity.log_error(f"Unexpected error while {state.value}: {e}")
                    result = StageResult(StageOutcome.FATAL, f"Unexpected error while {state.value}: {e}")

                session.stage_result = result
                if result.outcome in (StageOutcome.FATAL, StageOutcome.RECOVERABLE):
                    self.notifier.notify_failure(result.message)

                state = next_state(state, result.outcome)
        finally:
            self._set_state(WorkflowState.EJECTING)
            session.ejected = self._eject()
            session.completed_at = datetime.now().isoformat()
            with self._lock:
                self.last_session = session
                self.current_session = None
                self.state = WorkflowState.IDLE

        return session

    def _eject(self) -> bool:
        try:
            ejected = self.drive.eject()
        except Exception as e:
            activity.log_error(f"Error ejecting disc: {e}")
            return False
        if ejected:
            activity.disc_ejected()
        return ejected


# Global engine instance (initialized at startup)
_engine: Optional[RipEngine] = None


def get_engine() -> Optional[RipEngine]:
    """Get the global rip engine instance"""
    return _engine


def init_engine(config: Configuration, settings: dict = None) -> RipEngine:
    """Initialize the global rip engine"""
    global _engine
    _engine = RipEngine(config, settings)
    return _engine
