from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure local "src/" takes precedence over any globally-installed "poaledger" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)


@pytest.fixture
def chain():
    from poaledger.testing.scenarios import new_chain

    return new_chain()


@pytest.fixture
def eco(chain):
    from poaledger.testing.scenarios import stand_up

    return stand_up(chain)
