import sys
from pathlib import Path

# Ensure package import for tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import matplotlib

matplotlib.use("Agg")

import pytest

from aqt_sim.core.network import construct_path
from aqt_sim.core.packet import PacketFactory


@pytest.fixture
def path3():
    """Path network 0 -> 1 -> 2."""
    return construct_path(3)


@pytest.fixture
def factory():
    return PacketFactory()
