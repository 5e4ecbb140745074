"""
CD Ripper Configuration Management
Handles the key=value configuration store, YAML tunables and startup checks
"""

import os
import shlex
import shutil
import subprocess
import sys
import yaml
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Callable

CONFIG_DIR = Path(__file__).parent.parent / "config"
CONFIG_FILE = CONFIG_DIR / "settings.yaml"
DEFAULT_CONFIG = CONFIG_DIR / "default.yaml"

CONF_FILE = Path(os.environ.get("CD_RIPPER_CONF", "/etc/cd_ripper.conf"))

CONF_KEYS = ("TEMP_RIP_DIR", "FINAL_DEST", "DISCORD_WEBHOOK_URL")

DEFAULT_TEMP_RIP_DIR = "/tmp/cd_ripper"
DEFAULT_FINAL_DEST = "/var/lib/cd_ripper"

# Required command -> Debian package
REQUIRED_COMMANDS = {
    "whipper": "whipper",
    "beet": "beets",
    "eject": "eject",
}

DEFAULT_SETTINGS = {
    'polling': {
        'idle_backoff': 3,      # seconds between polls while no disc
        'settle_backoff': 5,    # seconds after an attempt finishes
    },
    'timeouts': {
        'probe': 60,
        'rip': 7200,
        'tag': 1800,
        'eject': 30,
        'webhook': 10,
    },
    'drive': {
        'device': '',           # empty = eject's default drive
    },
    'web': {
        'enabled': True,
        'host': '0.0.0.0',
        'port': 8338,
    },
    'beets_web': {
        'enabled': True,
        'host': '0.0.0.0',
        'port': 8337,
    },
    'update': {
        'releases_url': 'https://api.github.com/repos/cd-ripper/cd-ripper/releases/latest',
    },
}


class ConfigError(Exception):
    """Configuration is missing, invalid or cannot be written"""


class MissingDependencyError(Exception):
    """A required external command is not installed"""


@dataclass(frozen=True)
class Configuration:
    """The three values read from the configuration store"""
    temp_dir: Path
    final_dest: Path
    webhook_url: Optional[str] = None


# ============== YAML Tunables ==============

def _merge(base: dict, override: dict) -> dict:
    merged = dict(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_settings() -> dict:
    """Load tunables from file, or defaults if not exists"""
    loaded = {}
    if CONFIG_FILE.exists():
        with open(CONFIG_FILE) as f:
            loaded = yaml.safe_load(f) or {}
    elif DEFAULT_CONFIG.exists():
        with open(DEFAULT_CONFIG) as f:
            loaded = yaml.safe_load(f) or {}
    return _merge(DEFAULT_SETTINGS, loaded)


# ============== Configuration Store ==============

def parse_conf(text: str) -> dict:
    """Parse shell-style KEY=value lines, keeping only recognized keys"""
    values = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue
        key, raw = line.split('=', 1)
        key = key.strip()
        if key not in CONF_KEYS:
            continue
        try:
            values[key] = ' '.join(shlex.split(raw, comments=True))
        except ValueError as e:
            raise ConfigError(f"Malformed value for {key}: {e}")
    return values


def format_conf(config: Configuration) -> str:
    values = {
        "TEMP_RIP_DIR": str(config.temp_dir),
        "FINAL_DEST": str(config.final_dest),
        "DISCORD_WEBHOOK_URL": config.webhook_url or "",
    }
    return ''.join(f"{key}={shlex.quote(values[key])}\n" for key in CONF_KEYS)


def build_configuration(temp_dir: str, final_dest: str, webhook_url: str = "") -> Configuration:
    """Build a Configuration from raw strings, rejecting empty paths"""
    temp_dir = (temp_dir or "").strip()
    final_dest = (final_dest or "").strip()
    webhook_url = (webhook_url or "").strip()

    if not temp_dir or not final_dest:
        raise ConfigError("TEMP_RIP_DIR and FINAL_DEST must be set")

    return Configuration(
        temp_dir=Path(temp_dir),
        final_dest=Path(final_dest),
        webhook_url=webhook_url or None,
    )


def load_configuration(path: Path = None) -> Configuration:
    """Load the configuration store"""
    path = Path(path or CONF_FILE)
    try:
        with open(path) as f:
            values = parse_conf(f.read())
    except OSError as e:
        raise ConfigError(f"Cannot read configuration {path}: {e}")

    return build_configuration(
        values.get("TEMP_RIP_DIR", ""),
        values.get("FINAL_DEST", ""),
        values.get("DISCORD_WEBHOOK_URL", ""),
    )


def save_configuration(config: Configuration, path: Path = None):
    """Write the configuration store once and make it read-only"""
    path = Path(path or CONF_FILE)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            f.write(format_conf(config))
        os.chmod(path, 0o444)
    except OSError as e:
        raise ConfigError(f"Failed to write configuration to {path}: {e}")


def prompt_configuration(ask: Callable[[str], str] = None) -> Configuration:
    """Ask for the three values on the terminal"""
    ask = ask or input
    temp_dir = ask("Temporary directory where CDs will be ripped: ")
    final_dest = ask("Final destination directory for processed CDs: ")
    webhook_url = ask("Discord webhook URL for notifications (blank for none): ")
    return build_configuration(temp_dir, final_dest, webhook_url)


def ensure_configuration(path: Path = None, interactive: bool = None) -> Configuration:
    """Load the configuration store, creating it on first run.

    Interactive sessions are prompted; otherwise the defaults are written.
    """
    path = Path(path or CONF_FILE)

    if not path.exists():
        if interactive is None:
            interactive = sys.stdin.isatty()

        if interactive:
            config = prompt_configuration()
        else:
            print("No configuration file found and not running interactively. "
                  "Using default configuration values.")
            config = build_configuration(DEFAULT_TEMP_RIP_DIR, DEFAULT_FINAL_DEST, "")

        save_configuration(config, path)
        print(f"Configuration saved to {path}.")

    config = load_configuration(path)
    validate_configuration(config)
    return config


def validate_configuration(config: Configuration):
    """Check paths are absolute and writable, creating them if needed"""
    for name, directory in (("TEMP_RIP_DIR", config.temp_dir), ("FINAL_DEST", config.final_dest)):
        if not directory.is_absolute():
            raise ConfigError(f"{name} must be an absolute path: {directory}")
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigError(f"Cannot create {name} {directory}: {e}")
        if not os.access(directory, os.W_OK):
            raise ConfigError(f"{name} is not writable: {directory}")

    # The workspace is emptied before every rip
    temp_dir = config.temp_dir.resolve()
    final_dest = config.final_dest.resolve()
    if final_dest == temp_dir or temp_dir in final_dest.parents:
        raise ConfigError(f"FINAL_DEST {config.final_dest} must not be inside TEMP_RIP_DIR {config.temp_dir}")


# ============== Dependencies ==============

def find_missing_commands() -> list:
    """Return required commands not found on PATH"""
    return [cmd for cmd in REQUIRED_COMMANDS if shutil.which(cmd) is None]


def install_missing_packages(missing: list) -> bool:
    """Install the Debian packages for missing commands with apt-get"""
    if not missing:
        return True

    packages = [REQUIRED_COMMANDS[cmd] for cmd in missing]
    print(f"Missing dependencies detected: {' '.join(packages)}")

    if os.geteuid() != 0:
        print("Not running as root, skipping package installation")
        return False

    print("Updating package lists and installing missing packages...")
    try:
        update = subprocess.run(["apt-get", "update"], timeout=600)
        if update.returncode != 0:
            return False
        install = subprocess.run(["apt-get", "install", "-y"] + packages, timeout=1800)
        return install.returncode == 0
    except (subprocess.TimeoutExpired, FileNotFoundError) as e:
        print(f"Package installation failed: {e}")
        return False


def check_dependencies(install: bool = True):
    """Make sure every required command exists, installing if allowed"""
    missing = find_missing_commands()
    if missing and install:
        install_missing_packages(missing)
        missing = find_missing_commands()

    if missing:
        raise MissingDependencyError(f"Required commands not installed: {', '.join(missing)}")
