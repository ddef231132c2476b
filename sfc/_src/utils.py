import datetime
import os
import secrets
import string
import subprocess
from pathlib import Path

from sfc._src.exceptions import CommandError


_ALPHANUMERIC = string.ascii_letters + string.digits


def ensure_dir(s: str | Path) -> None:
    """Recursively create a directory if it does not exist"""
    path = Path(s)
    path.mkdir(parents=True, exist_ok=True)


def random_name(length: int = 12) -> str:
    return "".join(secrets.choice(_ALPHANUMERIC) for _ in range(length))


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def timestamp_suffix(fmt: str) -> str:
    return utcnow().strftime(fmt)


def is_link(path: Path) -> bool:
    """True for any symlink, including dangling ones"""
    return os.path.islink(path)


def lexists(path: Path) -> bool:
    return os.path.lexists(path)


def read_lines_trimmed(path: Path) -> list[str]:
    """Return the non-blank, non-comment lines of a file.

    A missing or unreadable file reads as empty.
    """
    try:
        data = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return []
    lines = []
    for line in data.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        lines.append(line)
    return lines


def run_command(command: list[str], env: dict | None = None, cwd: str | Path | None = None) -> str:
    """Run a command to completion and return its stdout.

    Raises ``CommandError`` on a non-zero exit, or when the executable
    cannot be started at all.
    """
    try:
        proc = subprocess.run(
            command,
            env=env,
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as err:
        raise CommandError(command, None, str(err)) from err
    if proc.returncode != 0:
        raise CommandError(command, proc.returncode, proc.stderr)
    return proc.stdout
