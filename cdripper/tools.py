"""
CD Ripper External Tools
Wrappers for whipper, beets and eject command-line interfaces
"""

import socket
import subprocess
from dataclasses import dataclass
from typing import List, Optional

from . import activity


@dataclass
class ToolResult:
    """Outcome of one external command"""
    success: bool
    output: str = ""
    error: str = ""
    returncode: Optional[int] = None


def run_tool(cmd: List[str], timeout: Optional[float] = None) -> ToolResult:
    """Run a command to completion, capturing stdout and stderr together"""
    try:
        proc = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout
        )
    except subprocess.TimeoutExpired as e:
        output = e.output if isinstance(e.output, str) else ""
        return ToolResult(False, output, f"{cmd[0]} timed out after {timeout}s")
    except FileNotFoundError:
        return ToolResult(False, "", f"{cmd[0]} not installed")
    except OSError as e:
        return ToolResult(False, "", str(e))

    output = proc.stdout or ""
    if proc.returncode != 0:
        return ToolResult(False, output, f"{cmd[0]} exited with code {proc.returncode}", proc.returncode)
    return ToolResult(True, output, "", proc.returncode)


class Whipper:
    """Wrapper for the whipper command-line interface"""

    def __init__(self, binary: str = "whipper", probe_timeout: float = 60, rip_timeout: float = 7200):
        self.binary = binary
        self.probe_timeout = probe_timeout
        self.rip_timeout = rip_timeout

    def cd_info(self) -> ToolResult:
        """Probe the drive. Success means a disc is present."""
        return run_tool([self.binary, "cd-info"], timeout=self.probe_timeout)

    def rip(self, offset: int, output_dir: str) -> ToolResult:
        """Rip the inserted disc into output_dir"""
        return run_tool(
            [self.binary, "rip", "--offset", str(offset), "--output", str(output_dir)],
            timeout=self.rip_timeout
        )


class Beets:
    """Wrapper for the beets (beet) command-line interface"""

    def __init__(self, binary: str = "beet", import_timeout: float = 1800):
        self.binary = binary
        self.import_timeout = import_timeout

    def import_album(self, directory: str) -> ToolResult:
        """Import, tag and rename files under directory without prompting"""
        return run_tool([self.binary, "import", str(directory), "--quiet"], timeout=self.import_timeout)

    def web_running(self) -> bool:
        try:
            result = subprocess.run(
                ["pgrep", "-f", f"{self.binary} web"],
                capture_output=True, text=True, timeout=5
            )
            return result.returncode == 0 and bool(result.stdout.strip())
        except (subprocess.TimeoutExpired, FileNotFoundError):
            return False

    def start_web(self, host: str = "0.0.0.0", port: int = 8337) -> bool:
        """Start the beets web UI in the background unless already running"""
        if self.web_running():
            return True

        activity.log_info("Starting beets Web UI in background...")
        try:
            subprocess.Popen(
                [self.binary, "web", "--host", host, "--port", str(port)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True
            )
            return True
        except OSError as e:
            activity.log_warning(f"Could not start beets Web UI: {e}")
            return False


class Drive:
    """The optical drive, only ever told to open"""

    def __init__(self, device: str = "", timeout: float = 30):
        self.device = device
        self.timeout = timeout

    def eject(self) -> bool:
        cmd = ["eject"]
        if self.device:
            cmd.append(self.device)
        result = run_tool(cmd, timeout=self.timeout)
        if not result.success:
            activity.log_warning(f"Eject failed: {result.error}")
        return result.success


def primary_ip() -> str:
    """Best guess at the host's primary IP address"""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        # No packets are sent for a UDP connect
        sock.connect(("10.255.255.255", 1))
        return sock.getsockname()[0]
    except OSError:
        return "127.0.0.1"
    finally:
        sock.close()
