"""Pytest configuration for squadron_ops tests."""
import sys
from pathlib import Path

# Add src/ to path for src-layout imports
_PROJECT_ROOT = Path(__file__).parent.parent
_SRC = _PROJECT_ROOT / 'src'
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

import pytest

from squadron_ops.permissions.calculator import BOOLEAN_PERMISSIONS, SCOPED_PERMISSIONS
from squadron_ops.permissions.permission_set import PermissionSet


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_permission_set():
    """Build a full-catalogue set; keyword arguments override single entries."""

    def _make(**overrides) -> PermissionSet:
        grants: dict = {name: False for name in BOOLEAN_PERMISSIONS}
        grants.update({name: () for name in SCOPED_PERMISSIONS})
        grants.update(overrides)
        return PermissionSet(grants)

    return _make
