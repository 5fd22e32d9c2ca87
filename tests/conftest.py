from collections.abc import Iterator

import logfire
import pytest

from plutus_bridge.config import EvaluatorConfig
from plutus_bridge.evaluator import Evaluator

from tests.utils import FakeGuest


@pytest.fixture(scope='session', autouse=True)
def quiet_logfire() -> None:
    logfire.configure(send_to_logfire=False, console=False)


@pytest.fixture
def config() -> EvaluatorConfig:
    return EvaluatorConfig(cost_models=b'\xa0', max_tx_ex_steps=10_000, max_tx_ex_mem=5_000)


@pytest.fixture
def guest() -> FakeGuest:
    return FakeGuest()


@pytest.fixture
def evaluator(config: EvaluatorConfig, guest: FakeGuest) -> Iterator[Evaluator]:
    with Evaluator(config, guest=guest) as instance:
        yield instance
