"""
CD Ripper Activity Logger
Logs user-facing events to activity log file
"""

import os
import json
from datetime import datetime, timedelta
from pathlib import Path

LOG_DIR = Path(os.environ.get("CD_RIPPER_LOG_DIR", Path(__file__).parent.parent / "logs"))
ACTIVITY_LOG = LOG_DIR / "activity.log"
HISTORY_FILE = LOG_DIR / "rip_history.json"

# Ensure log directory exists
LOG_DIR.mkdir(parents=True, exist_ok=True)


def log(message: str, level: str = "INFO"):
    """Log an activity event"""
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    level = level.upper()

    line = f"{timestamp} | {level} | {message}\n"

    # Echo for journald when running as a service
    print(line, end="", flush=True)

    try:
        with open(ACTIVITY_LOG, "a") as f:
            f.write(line)
    except Exception as e:
        print(f"Failed to write activity log: {e}")


def log_info(message: str):
    """Log an info event"""
    log(message, "INFO")


def log_success(message: str):
    """Log a success event"""
    log(message, "SUCCESS")


def log_error(message: str):
    """Log an error event"""
    log(message, "ERROR")


def log_warning(message: str):
    """Log a warning event"""
    log(message, "WARN")


# Convenience functions for specific events
def disc_detected():
    log_info("CD detected. Starting ripping process.")


def offset_detected(offset: int):
    log_success(f"Drive offset detected: {offset}")


def rip_started(workspace: str, offset: int):
    log(f"Ripping the CD into {workspace} (offset {offset})", "START")


def rip_completed():
    log_success("CD ripping completed successfully.")


def rip_failed(error: str):
    log_error(f"Error during ripping: {error}")


def tag_started(workspace: str):
    log_info(f"Tagging and renaming the CD with beets: {workspace}")


def tag_completed():
    log_success("Tagging and renaming completed.")


def tag_failed(error: str):
    log_warning(f"Beets encountered an error during import: {error}")


def album_moved(source: str, destination: str):
    log_success(f"Album moved: {source} -> {destination}")


def relocate_failed(error: str):
    log_error(f"Relocation failed: {error}")


def disc_ejected():
    log_info("Disc ejected")


def notification_failed(error: str):
    log_warning(f"Webhook notification failed: {error}")


def service_started():
    log_info("CD Ripper service started")


def service_stopped():
    log_info("CD Ripper service stopped")


# Rip History Tracking
def save_rip_to_history(
    artist: str,
    album: str = "",
    year: str = "",
    destination: str = "",
    drive_offset: int = 0,
    status: str = "complete"
):
    """Save a relocated album to the rip history"""
    history = load_rip_history()

    entry = {
        "artist": artist,
        "album": album,
        "year": year,
        "destination": destination,
        "drive_offset": drive_offset,
        "status": status,
        "completed_at": datetime.now().isoformat()
    }

    history.append(entry)

    try:
        with open(HISTORY_FILE, 'w') as f:
            json.dump(history, f, indent=2)
        log_info(f"Saved to rip history: {artist} - {album}")
    except Exception as e:
        log_error(f"Error saving rip history: {e}")


def load_rip_history() -> list:
    """Load rip history from file"""
    if HISTORY_FILE.exists():
        try:
            with open(HISTORY_FILE) as f:
                return json.load(f)
        except Exception as e:
            print(f"Error loading rip history: {e}")
    return []


def get_recent_rips(days: int = 7) -> list:
    """Get rips from the last N days"""
    history = load_rip_history()
    cutoff = (datetime.now() - timedelta(days=days)).isoformat()

    return [rip for rip in history if rip.get('completed_at', '') >= cutoff]


def read_recent_lines(limit: int = 100) -> list:
    """Get recent activity log lines, newest first"""
    lines = []
    try:
        if ACTIVITY_LOG.exists():
            with open(ACTIVITY_LOG) as f:
                lines = f.readlines()[-limit:]
            lines = [line.strip() for line in lines if line.strip()]
            lines.reverse()
    except Exception as e:
        print(f"Error reading activity log: {e}")
    return lines
