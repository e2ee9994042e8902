#!/usr/bin/env python3
"""Development scripts for the Register Path service."""

import subprocess
import sys


def start():
    """Start the development server."""
    subprocess.run([
        "uvicorn",
        "register_path.main:app",
        "--host", "0.0.0.0",
        "--port", "5000",
        "--reload"
    ])


def worker():
    """Start a Celery worker with the beat scheduler for reminder sweeps."""
    subprocess.run([
        "celery", "-A", "register_path.tasks.celery_app", "worker", "--beat", "--loglevel=info"
    ])


def test():
    """Run the test suite."""
    subprocess.run(["pytest", "tests/"])


def hash_admin_password():
    """Print an ADMIN_PASSWORD_HASH value for the password given as the next argument."""
    from register_path.utils.auth import get_password_hash

    if len(sys.argv) < 3:
        print("Usage: python scripts.py hash-admin-password <password>")
        sys.exit(1)
    print(get_password_hash(sys.argv[2]))


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python scripts.py <command>")
        print("Commands: start, worker, test, hash-admin-password")
        sys.exit(1)

    command = sys.argv[1].replace("-", "_")
    if hasattr(sys.modules[__name__], command):
        getattr(sys.modules[__name__], command)()
    else:
        print(f"Unknown command: {sys.argv[1]}")
        sys.exit(1)
