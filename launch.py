#!/usr/bin/env python3
"""Photo Backup Launcher.

Runs the service under gunicorn and waits until it answers its health check.
"""

import os
import shutil
import signal
import socket
import subprocess
import sys
import time
import urllib.error
import urllib.request

# ── Configuration ────────────────────────────────────────────
PROJECT_DIR = os.path.dirname(os.path.abspath(__file__))
HOST = os.environ.get("PHOTO_BACKUP_HOST", "127.0.0.1")
PORT = int(os.environ.get("PHOTO_BACKUP_PORT", "3001"))
HEALTH_URL = f"http://{HOST}:{PORT}/api/health"
PID_FILE = os.path.join(PROJECT_DIR, ".gunicorn.pid")

gunicorn_proc: subprocess.Popen | None = None


def log(msg: str) -> None:
    print(f"[photo-backup] {msg}", flush=True)


def port_in_use(host: str, port: int) -> bool:
    """Check if a port is already in use."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex((host, port)) == 0


def wait_for_server(timeout: int = 15) -> bool:
    """Poll the health URL until the server responds or timeout."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            with urllib.request.urlopen(HEALTH_URL, timeout=1):
                return True
        except (urllib.error.URLError, OSError):
            pass
        # gunicorn exited early
        if gunicorn_proc and gunicorn_proc.poll() is not None:
            return False
        time.sleep(0.5)
    return False


def shutdown(_signum: int = 0, _frame: object = None) -> None:
    """Gracefully stop gunicorn."""
    print()
    log("Shutting down...")
    if gunicorn_proc and gunicorn_proc.poll() is None:
        gunicorn_proc.terminate()
        try:
            gunicorn_proc.wait(timeout=10)
        except subprocess.TimeoutExpired:
            gunicorn_proc.kill()
    if os.path.exists(PID_FILE):
        os.remove(PID_FILE)
    log("Stopped.")
    sys.exit(0)


def main() -> None:
    global gunicorn_proc

    gunicorn_bin = shutil.which("gunicorn")
    if gunicorn_bin is None:
        log("gunicorn not found. Install the project with:")
        log("  pip install -e .")
        sys.exit(1)

    if port_in_use(HOST, PORT):
        log(f"Port {PORT} is already in use. Is the service already running?")
        sys.exit(1)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    # A single worker process keeps one backup pipeline and one scan guard;
    # threads serve concurrent status requests.
    log(f"Starting Photo Backup (gunicorn on {HOST}:{PORT})...")
    gunicorn_proc = subprocess.Popen(
        [
            gunicorn_bin,
            "--bind",
            f"{HOST}:{PORT}",
            "--workers",
            "1",
            "--threads",
            "8",
            "--timeout",
            "300",
            "--pid",
            PID_FILE,
            "--access-logfile",
            "-",
            "--error-logfile",
            "-",
            "photo_backup:create_app()",
        ],
        cwd=PROJECT_DIR,
    )

    log("Waiting for server...")
    if not wait_for_server():
        log("Server did not start. Check output above.")
        if gunicorn_proc.poll() is None:
            gunicorn_proc.terminate()
        sys.exit(1)

    log(f"Photo Backup is running at: http://{HOST}:{PORT}")
    log("Press Ctrl+C to stop the server.")

    try:
        gunicorn_proc.wait()
    except KeyboardInterrupt:
        shutdown()


if __name__ == "__main__":
    main()
