import os
import pathlib
import sys

import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import tribunal`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from tribunal.config import TribunalConfig  # noqa: E402
from tribunal.engine import DisputeResolution  # noqa: E402
from tribunal.events import EventStore  # noqa: E402
from tribunal.hardening import ManualClock  # noqa: E402

ETH = 10 ** 18

ADMIN = "0xad00000000000000000000000000000000000001"
TREASURY = "0x7e00000000000000000000000000000000000002"
RELAYER = "0x5e00000000000000000000000000000000000003"
ALICE = "0xa100000000000000000000000000000000000004"
BOB = "0xb000000000000000000000000000000000000005"
CAROL = "0xc000000000000000000000000000000000000006"

DAY = 86400


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: slow correctness tests (skipped unless TRIBUNAL_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_slow = _env_flag('TRIBUNAL_RUN_SLOW')

    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set TRIBUNAL_RUN_SLOW=1 to enable'))


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    """Keep TRIBUNAL_* variables of the developer's shell out of the tests."""
    for name in list(os.environ):
        if name.startswith("TRIBUNAL_") and name != "TRIBUNAL_RUN_SLOW":
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock():
    return ManualClock(1_700_000_000)


@pytest.fixture
def store():
    return EventStore()


@pytest.fixture
def engine(clock, store):
    platform = DisputeResolution(ADMIN, TREASURY, clock=clock, config=TribunalConfig())
    platform.bus.subscribe()(store.record)
    platform.set_relayer(ADMIN, RELAYER)
    return platform


class Driver:
    """Moves a dispute through the lifecycle with sensible defaults."""

    def __init__(self, engine: DisputeResolution, clock: ManualClock):
        self.engine = engine
        self.clock = clock
        self._refs = 0

    def ref(self, prefix: str = "ipfs://Qm") -> str:
        self._refs += 1
        return f"{prefix}{self._refs:04d}"

    def create(self, amount: int = ETH, claimant: str = ALICE, respondent: str = BOB, **kwargs) -> int:
        dispute = self.engine.create_dispute(
            claimant, respondent, kwargs.pop("category", "contract_breach"),
            kwargs.pop("description_ref", self.ref("ipfs://QmDesc")), amount, **kwargs,
        )
        return dispute.dispute_id

    def accepted(self, amount: int = ETH, **kwargs) -> int:
        dispute_id = self.create(amount, **kwargs)
        self.engine.accept_dispute(BOB, dispute_id, amount)
        return dispute_id

    def awaiting_verdict(self, amount: int = ETH) -> int:
        dispute_id = self.accepted(amount)
        self.clock.advance(3 * DAY)
        self.engine.request_verdict(ALICE, dispute_id)
        return dispute_id

    def deliver(self, dispute_id: int, resolution: str = "favor_claimant", confidence: int = 85) -> None:
        request_id = self.engine.get_dispute(dispute_id).current_request_id
        self.engine.deliver_verdict(RELAYER, request_id, resolution, confidence, self.ref("ipfs://QmWhy"))

    def verdict_delivered(self, resolution: str = "favor_claimant", amount: int = ETH) -> int:
        dispute_id = self.awaiting_verdict(amount)
        self.deliver(dispute_id, resolution)
        return dispute_id

    def appealed(self, resolution: str = "split", appellant: str = BOB, amount: int = ETH) -> int:
        dispute_id = self.verdict_delivered(resolution, amount)
        stake = self.engine.required_appeal_stake(dispute_id)
        self.engine.appeal(appellant, dispute_id, stake)
        return dispute_id

    def resolved(self, resolution: str = "favor_claimant", amount: int = ETH) -> int:
        dispute_id = self.verdict_delivered(resolution, amount)
        self.clock.advance(2 * DAY + 1)
        self.engine.finalize(CAROL, dispute_id)
        return dispute_id


@pytest.fixture
def driver(engine, clock):
    return Driver(engine, clock)
