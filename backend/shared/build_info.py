"""Build metadata reported by the health endpoint.

CI sets APP_VERSION and GIT_COMMIT. Local runs fall back to asking git,
and to "dev" when git is unavailable or the tree is not a checkout.
"""

import os
import subprocess


def _git_short_sha() -> str:
    try:
        return subprocess.check_output(
            ["git", "rev-parse", "--short", "HEAD"],  # noqa: S607
            text=True,
            stderr=subprocess.DEVNULL,
        ).strip()
    except (FileNotFoundError, subprocess.CalledProcessError):
        return "dev"


APP_VERSION: str = os.environ.get("APP_VERSION", "dev")
GIT_COMMIT: str = os.environ.get("GIT_COMMIT") or _git_short_sha()
