import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
src_root = ROOT / "src"
if str(src_root) not in sys.path:
    sys.path.insert(0, str(src_root))

from flocksim.config import ShoalConfig  # noqa: E402


@pytest.fixture
def quiet_config():
    """Empty, seeded shoal config with wander switched off so forces are predictable."""

    def _make(**overrides) -> ShoalConfig:
        values = dict(agent_count=0, seed=1, wander_strength=0.0)
        values.update(overrides)
        return ShoalConfig(**values)

    return _make
