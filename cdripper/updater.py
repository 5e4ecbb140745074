"""
CD Ripper Self-Update and Service Installation
"""

import getpass
import shutil
import subprocess
import sys
import tarfile
import tempfile
from pathlib import Path

import requests

from . import __version__

PROJECT_DIR = Path(__file__).resolve().parent.parent
PACKAGE_NAME = "cdripper"

SERVICE_NAME = "cd_ripper"
SERVICE_FILE = Path("/etc/systemd/system") / f"{SERVICE_NAME}.service"

SERVICE_TEMPLATE = """[Unit]
Description=CD Ripping Service
After=network.target

[Service]
ExecStart={exec_start}
Restart=always
User={user}
StandardOutput=journal
StandardError=journal
SyslogIdentifier={name}

[Install]
WantedBy=multi-user.target
"""


def _version_tuple(version: str) -> tuple:
    return tuple(int(x) for x in version.split('.'))


def check_for_updates(releases_url: str) -> dict:
    """Check the release API for the latest version"""
    result = {
        'current_version': __version__,
        'latest_version': None,
        'update_available': False,
        'tarball_url': None,
        'error': None
    }

    try:
        r = requests.get(
            releases_url,
            timeout=10,
            headers={'Accept': 'application/vnd.github.v3+json'}
        )

        if r.status_code == 200:
            data = r.json()
            latest = data.get('tag_name', '').lstrip('v')
            result['latest_version'] = latest
            result['tarball_url'] = data.get('tarball_url')

            if latest and latest != __version__:
                try:
                    result['update_available'] = _version_tuple(latest) > _version_tuple(__version__)
                except ValueError:
                    # Version parsing failed, assume update available if different
                    result['update_available'] = True
        elif r.status_code == 404:
            result['latest_version'] = __version__
        else:
            result['error'] = f'Release API returned {r.status_code}'

    except requests.exceptions.RequestException as e:
        result['error'] = str(e)

    return result


def _download(url: str, target: Path):
    with requests.get(url, stream=True, timeout=60) as r:
        r.raise_for_status()
        with open(target, 'wb') as f:
            for chunk in r.iter_content(chunk_size=65536):
                f.write(chunk)


def _extract_release(archive: Path, target: Path) -> Path:
    """Unpack a release archive and return its project root"""
    with tarfile.open(archive) as tar:
        for member in tar.getmembers():
            name = Path(member.name)
            if name.is_absolute() or '..' in name.parts or member.issym() or member.islnk():
                raise tarfile.TarError(f"Unsafe path in archive: {member.name}")
        tar.extractall(target)

    # Release tarballs wrap the tree in one top-level folder
    entries = list(target.iterdir())
    root = entries[0] if len(entries) == 1 and entries[0].is_dir() else target
    if not (root / "run.py").is_file() or not (root / PACKAGE_NAME).is_dir():
        raise tarfile.TarError("Archive does not contain a CD Ripper release")
    return root


def replace_project(release_root: Path, project_dir: Path = PROJECT_DIR):
    """Copy a release over the checkout. Logs and local settings are kept."""
    package_dir = project_dir / PACKAGE_NAME
    if package_dir.exists():
        shutil.rmtree(package_dir)

    for entry in release_root.iterdir():
        dest = project_dir / entry.name
        if entry.is_dir():
            shutil.copytree(entry, dest, dirs_exist_ok=True)
        else:
            shutil.copy2(entry, dest)


def self_update(releases_url: str, project_dir: Path = PROJECT_DIR) -> bool:
    """Replace the installed checkout with the latest release"""
    print(f"Checking for updates at: {releases_url}")
    info = check_for_updates(releases_url)

    if info['error']:
        print(f"Update failed: {info['error']}. Please check your network connection or URL.")
        return False

    if not info['update_available']:
        print(f"Already up to date ({info['current_version']}).")
        return True

    if not info['tarball_url']:
        print("Update failed: release has no downloadable archive.")
        return False

    print(f"Downloading version {info['latest_version']} from {info['tarball_url']}")
    with tempfile.TemporaryDirectory(prefix="cd_ripper_update_") as tmp:
        tmp = Path(tmp)
        archive = tmp / "release.tar.gz"
        unpacked = tmp / "release"
        unpacked.mkdir()
        try:
            _download(info['tarball_url'], archive)
            release_root = _extract_release(archive, unpacked)
            replace_project(release_root, project_dir)
        except (requests.exceptions.RequestException, tarfile.TarError, OSError) as e:
            print(f"Update failed: {e}")
            return False

    print(f"Updated {project_dir} to version {info['latest_version']}. Please re-run the service.")
    return True


def render_service_unit(exec_start: str, user: str) -> str:
    return SERVICE_TEMPLATE.format(exec_start=exec_start, user=user, name=SERVICE_NAME)


def install_service(exec_start: str = None, service_file: Path = SERVICE_FILE) -> bool:
    """Write the systemd unit, then enable and start it"""
    if exec_start is None:
        exec_start = f"{sys.executable} {PROJECT_DIR / 'run.py'}"

    unit = render_service_unit(exec_start, getpass.getuser())
    try:
        service_file.write_text(unit)
    except OSError as e:
        print(f"Failed to write {service_file}: {e}")
        return False
    print(f"Systemd service file created at {service_file}")

    for args in (["daemon-reload"], ["enable", f"{SERVICE_NAME}.service"], ["start", f"{SERVICE_NAME}.service"]):
        proc = subprocess.run(["systemctl"] + args, timeout=60)
        if proc.returncode != 0:
            print(f"systemctl {' '.join(args)} failed")
            return False

    print(f"{SERVICE_NAME} service enabled and started.")
    return True
