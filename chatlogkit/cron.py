"""Install a daily crontab entry that decrypts and syncs at 4pm."""

from __future__ import annotations

import os
import subprocess
import sys

CRON_LINE = "0 16 * * * {exe} decrypt && {exe} sync"


def merge_crontab(current: str, exe: str) -> str | None:
    """The crontab with the daily entry added, or None if one is already present."""
    for line in current.strip().split("\n"):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if exe in line and "decrypt" in line and "sync" in line:
            return None
    parts = []
    if current:
        parts.append(current)
        if not current.endswith("\n"):
            parts.append("\n")
    parts.append(CRON_LINE.format(exe=exe))
    parts.append("\n")
    return "".join(parts)


def setup_cron(executable: str | None = None) -> tuple[bool, str]:
    """Add the daily entry to the user's crontab; return success and a message."""
    exe = os.path.abspath(executable or sys.argv[0])

    try:
        listing = subprocess.run(["crontab", "-l"], capture_output=True, text=True)
    except OSError as exc:
        return False, f"failed to read crontab: {exc}"
    if listing.returncode == 0:
        current = listing.stdout or ""
    elif listing.returncode == 1:
        current = ""
    else:
        return False, f"failed to read crontab: exit status {listing.returncode}"

    merged = merge_crontab(current, exe)
    if merged is None:
        return True, "Daily sync (4pm) already configured"

    try:
        install = subprocess.run(
            ["crontab", "-"], input=merged, capture_output=True, text=True
        )
    except OSError as exc:
        return False, f"failed to install crontab: {exc}\n"
    if install.returncode != 0:
        output = (install.stdout or "") + (install.stderr or "")
        return False, f"failed to install crontab: exit status {install.returncode}\n{output}"
    return True, "Daily sync (4pm) configured"