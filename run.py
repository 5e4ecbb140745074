#!/usr/bin/env python3
"""
CD Ripper - Automated Audio CD Ripping
"""

import argparse
import sys
import threading
from flask import Flask
from cdripper.routes import main as main_blueprint
from cdripper import __version__
from cdripper import activity
from cdripper import config
from cdripper import ripper
from cdripper import updater
from cdripper.tools import Beets, primary_ip


def create_app():
    app = Flask(__name__)

    # Register blueprints
    app.register_blueprint(main_blueprint)

    return app


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Rip audio CDs with whipper, tag them with beets and file them in a library"
    )

    parser.add_argument(
        "--update",
        action="store_true",
        help="Download and install the latest release, then exit"
    )

    parser.add_argument(
        "--install",
        action="store_true",
        help="Install as a systemd service that starts on boot, then exit"
    )

    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    settings = config.load_settings()

    if args.update:
        ok = updater.self_update(settings['update']['releases_url'])
        return 0 if ok else 1

    try:
        config.check_dependencies()
    except config.MissingDependencyError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.install:
        return 0 if updater.install_service() else 1

    try:
        cfg = config.ensure_configuration()
    except config.ConfigError as e:
        print(f"Error: {e}. Exiting.", file=sys.stderr)
        return 1

    beets_web = settings['beets_web']
    if beets_web.get('enabled'):
        Beets().start_web(beets_web['host'], beets_web['port'])
        print(f"Beets Web UI is available at: http://{primary_ip()}:{beets_web['port']}")

    engine = ripper.init_engine(cfg, settings)
    activity.service_started()
    try:
        serve(engine, settings['web'])
    except KeyboardInterrupt:
        pass
    finally:
        activity.service_stopped()
    return 0


def serve(engine, web: dict):
    """Run the poll loop, with the status API in front of it if enabled"""
    if not web.get('enabled'):
        print("Waiting for a CD to be inserted...")
        engine.run()
        return

    # The poll loop owns the drive; the web thread only reads status
    threading.Thread(target=engine.run, name="disc-poll", daemon=True).start()

    host = web.get('host', '0.0.0.0')
    port = web.get('port', 8338)
    print(f"""
    CD Ripper v{__version__}
    Status API on http://{host}:{port}/api/status
    Waiting for a CD to be inserted...
    """)

    app = create_app()
    app.run(host=host, port=port, debug=False)


if __name__ == '__main__':
    sys.exit(main())
