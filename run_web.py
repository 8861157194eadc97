#!/usr/bin/env python3
"""Run the Walkthrough Studio API."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent / "src"))

from walkthrough_studio.config import Config
from walkthrough_studio.core.sqlite_store import SqliteDocumentStore
from walkthrough_studio.services.defaults import seed_defaults
from walkthrough_studio.utils.logging_setup import configure_logging
from walkthrough_studio.web.app import create_app

if __name__ == '__main__':
    configure_logging()
    Config.ensure_dirs()
    store = SqliteDocumentStore(Config.DB_PATH)
    seed_defaults(store)

    print("\n" + "="*50)
    print("  Walkthrough Studio - API")
    print("="*50)
    print(f"\n  Database: {Config.DB_PATH}")
    print(f"  Starting server at http://{Config.WEB_HOST}:{Config.WEB_PORT}")
    print("  Press Ctrl+C to stop\n")

    create_app(store).run(host=Config.WEB_HOST, port=Config.WEB_PORT, debug=False, use_reloader=False)
