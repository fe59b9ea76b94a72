"""Pytest configuration: put shared core and component sources on the path; load shared fixtures."""

import sys
from pathlib import Path

_repo_root = Path(__file__).resolve().parent
for d in (
    _repo_root / "shared" / "core" / "src",
    _repo_root / "components" / "fetch_proxy" / "src",
):
    if str(d) not in sys.path:
        sys.path.insert(0, str(d))

pytest_plugins = ["core.pytest_fixtures"]
