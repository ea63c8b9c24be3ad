"""Architecture fixtures: the intentflow import graph and its layers."""

from pathlib import Path

import pytest
from pytestarch import (
    EvaluableArchitecture,
    LayeredArchitecture,
    get_evaluable_architecture,
)

SRC = Path(__file__).resolve().parents[2] / "src"


@pytest.fixture(scope="session")
def evaluable() -> EvaluableArchitecture:
    return get_evaluable_architecture(str(SRC), str(SRC / "intentflow"))


@pytest.fixture(scope="session")
def layers() -> LayeredArchitecture:
    """domain, application and infrastructure, named as 'src.intentflow.<layer>'."""
    architecture = LayeredArchitecture()
    for layer in ("domain", "application", "infrastructure"):
        architecture = architecture.layer(layer).containing_modules([f"src.intentflow.{layer}"])
    return architecture
