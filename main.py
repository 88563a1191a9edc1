"""Storyweave — dev launcher. Starts the story server in watch mode."""

import argparse
import logging
import os
import signal
import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
BACKEND_PORT = os.getenv("BACKEND_PORT", "3000")


def seed_demo_story(data_dir: Path) -> None:
    """Write a fresh story.json holding only the welcome page."""
    from storyweave.manifest import manifest_from_pages
    from storyweave.models import Page
    from storyweave.session import WELCOME_TEXT

    from backend import storage

    storage.init_storage(data_dir)
    welcome = Page(type="text", text=WELCOME_TEXT, duration_sec=5)
    storage.story_path().unlink(missing_ok=True)
    storage.save_story(manifest_from_pages([welcome]).dump())


def main():
    parser = argparse.ArgumentParser(description="Storyweave dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: ./data)")
    parser.add_argument("--demo", action="store_true",
                        help="Reset the story to the default welcome page")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    if args.demo:
        seed_demo_story(args.data_dir or Path("data"))

    # Build env for the subprocess so the backend picks up the same data dir
    env = os.environ.copy()
    if args.data_dir:
        env["DATA_DIR"] = str(args.data_dir.resolve())

    procs: list[subprocess.Popen] = []

    def shutdown(*_):
        print("\nShutting down...")
        for p in procs:
            p.terminate()
        for p in procs:
            p.wait()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    print(f"Starting story server on http://localhost:{BACKEND_PORT} ...")
    print("  GET  /api/story      - read story data")
    print("  POST /api/story      - save story data")
    print("  POST /api/upload     - upload a media file")
    procs.append(subprocess.Popen(
        [sys.executable, "-m", "uvicorn", "backend.app:app", "--reload",
         "--host", HOST, "--port", BACKEND_PORT],
        cwd=ROOT, env=env,
    ))

    for p in procs:
        p.wait()


if __name__ == "__main__":
    main()
