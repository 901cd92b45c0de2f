from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure local "src/" takes precedence over any globally-installed "annuity" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)

from annuity.ledger.constants import CONTRACT_ACCOUNT_ID  # noqa: E402
from annuity.ledger.token import InMemoryTokenLedger  # noqa: E402
from annuity.runtime import metrics  # noqa: E402
from annuity.runtime.executor import AnnuityExecutor  # noqa: E402
from annuity.runtime.genesis_config import GenesisConfig  # noqa: E402

T0 = 1_700_000_000


class FakeClock:
    """Settable seconds clock."""

    def __init__(self, t: int) -> None:
        self.t = int(t)

    def __call__(self) -> int:
        return self.t

    def advance(self, seconds: int) -> None:
        self.t += int(seconds)


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(T0)


@pytest.fixture
def token() -> InMemoryTokenLedger:
    return InMemoryTokenLedger(owner=CONTRACT_ACCOUNT_ID)


@pytest.fixture
def executor(clock: FakeClock, token: InMemoryTokenLedger) -> AnnuityExecutor:
    return AnnuityExecutor(
        contract_id=CONTRACT_ACCOUNT_ID,
        token=token,
        clock=clock,
        genesis=GenesisConfig(created_at=T0, balances={"alice": 1000, "bob": 1000}),
    )
