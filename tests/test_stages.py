"""
Tests for CD Ripper workflow stages
"""

import pytest
from unittest.mock import patch, MagicMock

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from cdripper.stages import (
    DriveCalibration,
    OffsetCalibrator,
    Relocator,
    RipperStage,
    StageOutcome,
    StageResult,
    TaggerStage,
    clear_workspace,
    destination_for,
    find_album_dir,
)
from cdripper.parsers import AlbumIdentity
from cdripper.tools import ToolResult


class TestStageResult:
    """Tests for StageResult"""

    def test_ok_outcomes(self):
        """Test success and skipped count as ok"""
        assert StageResult(StageOutcome.SUCCESS).ok
        assert StageResult(StageOutcome.SKIPPED).ok
        assert not StageResult(StageOutcome.RECOVERABLE).ok
        assert not StageResult(StageOutcome.FATAL).ok

    def test_to_dict(self):
        """Test serialization"""
        result = StageResult(StageOutcome.SUCCESS, identity=AlbumIdentity("A", "B", "C"), destination="/x")
        data = result.to_dict()
        assert data["outcome"] == "success"
        assert data["identity"]["artist"] == "A"
        assert data["destination"] == "/x"


class TestOffsetCalibrator:
    """Tests for drive offset calibration"""

    def test_calibrates_from_probe(self, whipper, notifier):
        """Test offset is parsed from cd-info output"""
        calibration = DriveCalibration()
        calibrator = OffsetCalibrator(whipper, notifier, calibration)

        assert calibrator.calibrate() == 102
        assert calibration.offset == 102
        notifier.notify_offset.assert_called_once_with(102)

    def test_idempotent(self, whipper, notifier):
        """Test the probe runs at most once"""
        calibrator = OffsetCalibrator(whipper, notifier, DriveCalibration())

        first = calibrator.calibrate()
        second = calibrator.calibrate()

        assert first == second == 102
        whipper.cd_info.assert_called_once()
        notifier.notify_offset.assert_called_once()

    def test_no_offset_defaults_to_zero(self, whipper, notifier):
        """Test output without an offset line calibrates to 0"""
        whipper.cd_info.return_value = ToolResult(True, "CDDB disc id: 8d0a6b0b\n", "", 0)
        calibrator = OffsetCalibrator(whipper, notifier, DriveCalibration())

        assert calibrator.calibrate() == 0

    def test_probe_failure_defaults_to_zero(self, whipper, notifier):
        """Test a failed probe never blocks the workflow"""
        whipper.cd_info.return_value = ToolResult(False, "", "whipper timed out after 60s")
        calibration = DriveCalibration()
        calibrator = OffsetCalibrator(whipper, notifier, calibration)

        assert calibrator.calibrate() == 0
        assert calibration.calibrated

    def test_uses_existing_calibration(self, whipper, notifier):
        """Test a pre-calibrated handle skips the probe"""
        calibrator = OffsetCalibrator(whipper, notifier, DriveCalibration(offset=6))

        assert calibrator.calibrate() == 6
        whipper.cd_info.assert_not_called()
        notifier.notify_offset.assert_not_called()


class TestClearWorkspace:
    """Tests for clear_workspace"""

    def test_removes_everything(self, tmp_path):
        """Test files, folders and hidden files are removed"""
        (tmp_path / "album").mkdir()
        (tmp_path / "album" / "01.flac").write_text("x")
        (tmp_path / "rip.log").write_text("x")
        (tmp_path / ".hidden").write_text("x")

        clear_workspace(tmp_path)

        assert tmp_path.exists()
        assert list(tmp_path.iterdir()) == []

    def test_creates_missing_workspace(self, tmp_path):
        """Test the workspace is created if missing"""
        workspace = tmp_path / "new"
        clear_workspace(workspace)
        assert workspace.is_dir()


class TestRipperStage:
    """Tests for the rip stage"""

    def test_success(self, whipper, tmp_path):
        """Test a clean rip"""
        result = RipperStage(whipper).rip(tmp_path, 102)

        assert result.outcome == StageOutcome.SUCCESS
        whipper.rip.assert_called_once_with(102, str(tmp_path))

    def test_nonzero_exit_is_fatal(self, whipper, tmp_path):
        """Test any failed rip is fatal"""
        whipper.rip.return_value = ToolResult(False, "", "whipper exited with code 1", 1)

        result = RipperStage(whipper).rip(tmp_path, 102)

        assert result.outcome == StageOutcome.FATAL
        assert result.message == "Error during ripping."
        whipper.rip.assert_called_once()


class TestTaggerStage:
    """Tests for the tag stage"""

    def test_success(self, beets, tmp_path):
        """Test a clean import"""
        result = TaggerStage(beets).tag(tmp_path)

        assert result.outcome == StageOutcome.SUCCESS
        beets.import_album.assert_called_once_with(str(tmp_path))

    def test_failure_is_recoverable(self, tmp_path):
        """Test beets failure does not stop the workflow"""
        beets = MagicMock()
        beets.import_album.return_value = ToolResult(False, "", "beet exited with code 1", 1)

        result = TaggerStage(beets).tag(tmp_path)

        assert result.outcome == StageOutcome.RECOVERABLE
        assert result.message == "Beets import error."


class TestFindAlbumDir:
    """Tests for find_album_dir"""

    def test_no_subdirectory(self, tmp_path):
        """Test loose files are not an album directory"""
        (tmp_path / "track01.flac").write_text("x")
        assert find_album_dir(tmp_path) is None

    def test_missing_workspace(self, tmp_path):
        """Test a missing workspace has no album"""
        assert find_album_dir(tmp_path / "missing") is None

    def test_picks_first_sorted(self, tmp_path):
        """Test multiple folders pick the first by name"""
        (tmp_path / "B - Second").mkdir()
        (tmp_path / "A - First").mkdir()
        assert find_album_dir(tmp_path).name == "A - First"


class TestDestinationFor:
    """Tests for destination_for"""

    def test_keeps_folder_name(self):
        """Test the album folder name is kept verbatim"""
        identity = AlbumIdentity("Pink Floyd", "The Wall", "1979")
        dest = destination_for(Path("/music"), "Pink Floyd - The Wall - 1979", identity)
        assert dest == Path("/music/Pink Floyd/Pink Floyd - The Wall - 1979")


class TestRelocator:
    """Tests for the relocate stage"""

    def test_moves_album(self, tmp_path):
        """Test the album lands under final_dest/artist"""
        workspace = tmp_path / "rip"
        final_dest = tmp_path / "library"
        album = workspace / "Pink Floyd - The Wall - 1979"
        album.mkdir(parents=True)
        (album / "01 - In the Flesh.flac").write_text("audio")

        result = Relocator().relocate(workspace, final_dest)

        dest = final_dest / "Pink Floyd" / "Pink Floyd - The Wall - 1979"
        assert result.outcome == StageOutcome.SUCCESS
        assert result.identity == AlbumIdentity("Pink Floyd", "The Wall", "1979")
        assert result.destination == str(dest)
        assert (dest / "01 - In the Flesh.flac").read_text() == "audio"
        assert not album.exists()

    def test_unparseable_name(self, tmp_path):
        """Test a name without separators still relocates"""
        workspace = tmp_path / "rip"
        (workspace / "Unknown").mkdir(parents=True)

        result = Relocator().relocate(workspace, tmp_path / "library")

        assert result.outcome == StageOutcome.SUCCESS
        assert result.identity == AlbumIdentity("Unknown", "", "")
        assert Path(result.destination) == tmp_path / "library" / "Unknown" / "Unknown"

    def test_no_album_directory(self, tmp_path):
        """Test nothing to relocate is fatal"""
        workspace = tmp_path / "rip"
        workspace.mkdir()

        result = Relocator().relocate(workspace, tmp_path / "library")

        assert result.outcome == StageOutcome.FATAL
        assert result.message == "No album directory found after tagging."

    def test_existing_destination(self, tmp_path):
        """Test an album already in the library is not overwritten"""
        workspace = tmp_path / "rip"
        (workspace / "Pink Floyd - The Wall - 1979").mkdir(parents=True)
        existing = tmp_path / "library" / "Pink Floyd" / "Pink Floyd - The Wall - 1979"
        existing.mkdir(parents=True)

        result = Relocator().relocate(workspace, tmp_path / "library")

        assert result.outcome == StageOutcome.FATAL
        assert "already exists" in result.message
        assert (workspace / "Pink Floyd - The Wall - 1979").exists()

    @patch('cdripper.stages.shutil.move')
    def test_move_error_is_fatal(self, mock_move, tmp_path):
        """Test a failed move is reported, not raised"""
        mock_move.side_effect = OSError("No space left on device")
        workspace = tmp_path / "rip"
        (workspace / "A - B - 2000").mkdir(parents=True)

        result = Relocator().relocate(workspace, tmp_path / "library")

        assert result.outcome == StageOutcome.FATAL
        assert "No space left" in result.message
