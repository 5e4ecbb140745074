"""
CD Ripper Workflow Stages

Each stage runs one external step against the workspace and returns a
StageResult. Stages never raise for expected failures; the engine decides
what happens next from the outcome.
"""

import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from . import activity
from .notifier import Notifier
from .parsers import AlbumIdentity, parse_album_identity, parse_offset
from .tools import Whipper, Beets


class StageOutcome(Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    RECOVERABLE = "recoverable"
    FATAL = "fatal"


@dataclass
class StageResult:
    outcome: StageOutcome
    message: str = ""
    identity: Optional[AlbumIdentity] = None
    destination: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome in (StageOutcome.SUCCESS, StageOutcome.SKIPPED)

    def to_dict(self):
        return {
            "outcome": self.outcome.value,
            "message": self.message,
            "identity": self.identity.to_dict() if self.identity else None,
            "destination": self.destination,
        }


@dataclass
class DriveCalibration:
    """Drive read offset, calibrated at most once per process"""
    offset: Optional[int] = None

    @property
    def calibrated(self) -> bool:
        return self.offset is not None


def clear_workspace(workspace: Path):
    """Remove everything inside workspace, creating it if missing"""
    workspace = Path(workspace)
    workspace.mkdir(parents=True, exist_ok=True)
    for entry in workspace.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()


class OffsetCalibrator:
    """Finds the drive read offset from `whipper cd-info` on first use"""

    def __init__(self, whipper: Whipper, notifier: Notifier, calibration: DriveCalibration):
        self.whipper = whipper
        self.notifier = notifier
        self.calibration = calibration

    def calibrate(self) -> int:
        if self.calibration.calibrated:
            return self.calibration.offset

        result = self.whipper.cd_info()
        if result.error and not result.output:
            activity.log_warning(f"Offset probe failed ({result.error}), using offset 0")

        offset = parse_offset(result.output)
        self.calibration.offset = offset

        activity.offset_detected(offset)
        self.notifier.notify_offset(offset)
        return offset


class RipperStage:
    """Rips the disc into a freshly cleared workspace"""

    FAILURE_REASON = "Error during ripping."

    def __init__(self, whipper: Whipper):
        self.whipper = whipper

    def rip(self, workspace: Path, offset: int) -> StageResult:
        try:
            clear_workspace(workspace)
        except OSError as e:
            activity.rip_failed(f"could not clear workspace: {e}")
            return StageResult(StageOutcome.FATAL, self.FAILURE_REASON)

        activity.rip_started(str(workspace), offset)
        result = self.whipper.rip(offset, str(workspace))
        if not result.success:
            activity.rip_failed(result.error)
            return StageResult(StageOutcome.FATAL, self.FAILURE_REASON)

        activity.rip_completed()
        return StageResult(StageOutcome.SUCCESS)


class TaggerStage:
    """Tags the rip with beets. Failure keeps the untagged rip."""

    FAILURE_REASON = "Beets import error."

    def __init__(self, beets: Beets):
        self.beets = beets

    def tag(self, workspace: Path) -> StageResult:
        activity.tag_started(str(workspace))
        result = self.beets.import_album(str(workspace))
        if not result.success:
            activity.tag_failed(result.error)
            return StageResult(StageOutcome.RECOVERABLE, self.FAILURE_REASON)

        activity.tag_completed()
        return StageResult(StageOutcome.SUCCESS)


def find_album_dir(workspace: Path) -> Optional[Path]:
    """Return the album folder directly under workspace, if any"""
    workspace = Path(workspace)
    if not workspace.is_dir():
        return None

    subdirs = sorted(p for p in workspace.iterdir() if p.is_dir())
    if not subdirs:
        return None
    if len(subdirs) > 1:
        activity.log_warning(
            f"Found {len(subdirs)} album directories, using {subdirs[0].name}"
        )
    return subdirs[0]


def destination_for(final_dest: Path, album_dir_name: str, identity: AlbumIdentity) -> Path:
    """final_dest/<artist>/<album folder name>"""
    return Path(final_dest) / identity.artist / album_dir_name


class Relocator:
    """Moves the tagged album folder into the library tree"""

    MISSING_REASON = "No album directory found after tagging."

    def relocate(self, workspace: Path, final_dest: Path) -> StageResult:
        album_dir = find_album_dir(workspace)
        if album_dir is None:
            activity.relocate_failed("no album directory found")
            return StageResult(StageOutcome.FATAL, self.MISSING_REASON)

        identity = parse_album_identity(album_dir.name)
        dest_path = destination_for(final_dest, album_dir.name, identity)

        if dest_path.exists():
            activity.relocate_failed(f"destination already exists: {dest_path}")
            return StageResult(
                StageOutcome.FATAL,
                f"Destination already exists: {dest_path}",
                identity=identity,
            )

        try:
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(album_dir), str(dest_path))
        except (OSError, shutil.Error) as e:
            activity.relocate_failed(str(e))
            return StageResult(
                StageOutcome.FATAL,
                f"Failed to move album to {dest_path}: {e}",
                identity=identity,
            )

        activity.album_moved(album_dir.name, str(dest_path))
        return StageResult(StageOutcome.SUCCESS, identity=identity, destination=str(dest_path))
