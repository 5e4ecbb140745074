"""
Pytest fixtures for CD Ripper tests
"""

import os
import tempfile

# Keep activity logs out of the source tree
os.environ.setdefault("CD_RIPPER_LOG_DIR", tempfile.mkdtemp(prefix="cd_ripper_logs_"))

import pytest
from pathlib import Path
from unittest.mock import MagicMock, patch

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from cdripper.config import Configuration
from cdripper.tools import ToolResult


CD_INFO_OUTPUT = """\
Checking device /dev/sr0
CDDB disc id: 8d0a6b0b
MusicBrainz disc id Nz2aZwIDp0Wm.4gKcK8Rbl0vQHg-
Read offset: 102
Disc duration: 00:45:12.000
"""


@pytest.fixture(autouse=True)
def activity_log(tmp_path):
    """Point the activity log and rip history at a temp directory"""
    from cdripper import activity

    log_file = tmp_path / "activity.log"
    history_file = tmp_path / "rip_history.json"
    with patch.object(activity, 'ACTIVITY_LOG', log_file), \
         patch.object(activity, 'HISTORY_FILE', history_file):
        yield log_file


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def rip_config(tmp_path):
    """Configuration with real temp and library directories"""
    temp = tmp_path / "rip"
    dest = tmp_path / "library"
    temp.mkdir()
    dest.mkdir()
    return Configuration(temp_dir=temp, final_dest=dest, webhook_url="https://discord.example/webhook")


@pytest.fixture
def cd_info_output():
    return CD_INFO_OUTPUT


@pytest.fixture
def whipper(cd_info_output):
    """Whipper double: disc present, rip succeeds"""
    mock = MagicMock()
    mock.cd_info.return_value = ToolResult(True, cd_info_output, "", 0)
    mock.rip.return_value = ToolResult(True, "", "", 0)
    return mock


@pytest.fixture
def beets():
    """Beets double: import creates a tagged album folder in the workspace"""
    mock = MagicMock()

    def import_album(directory):
        (Path(directory) / "Pink Floyd - The Wall - 1979").mkdir()
        return ToolResult(True, "", "", 0)

    mock.import_album.side_effect = import_album
    return mock


@pytest.fixture
def drive():
    mock = MagicMock()
    mock.eject.return_value = True
    return mock


@pytest.fixture
def notifier():
    mock = MagicMock()
    mock.enabled = True
    return mock


@pytest.fixture
def engine(rip_config, whipper, beets, drive, notifier):
    """RipEngine wired to test doubles"""
    from cdripper.ripper import RipEngine
    return RipEngine(rip_config, whipper=whipper, beets=beets, drive=drive, notifier=notifier)
