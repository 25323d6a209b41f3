"""
Pytest configuration and shared fixtures.
"""

import logging

import pytest
from typer.testing import CliRunner

from pomoml.config import SamplingMethod
from pomoml.diagnostics import LOGGER_NAME
from pomoml.io.counts import PoMoData


COUNTS_CONTENT = """\
COUNTSFILE  NPOP 3   NSITES 12
# Allele counts (A,C,G,T) of three populations
CHROM  POS  Sheep     Goat      Cow
1      1    0,0,10,0  0,0,9,1   0,0,10,0
1      2    5,5,0,0   10,0,0,0  8,2,0,0
1      3    0,0,0,0   0,3,0,7   0,0,0,10
1      4    10,0,0,0  10,0,0,0  10,0,0,0
1      5    0,10,0,0  0,10,0,0  0,9,0,1
1      6    0,0,10,0  0,0,10,0  1,0,9,0
1      7    0,0,0,10  0,0,0,10  0,0,0,10
1      8    10,0,0,0  9,0,1,0   10,0,0,0
1      9    0,10,0,0  0,10,0,0  0,10,0,0
1      10   0,0,0,10  0,2,0,8   0,0,0,10
1      11   0,10,0,0  0,10,0,0  0,10,0,0
1      12   10,0,0,0  10,0,0,0  10,0,0,0
"""

TREE_CONTENT = "((Sheep:0.05,Goat:0.05):0.02,Cow:0.08);\n"


@pytest.fixture
def cli_runner():
    """CLI test runner for Typer apps."""
    return CliRunner()


@pytest.fixture
def counts_file(tmp_path):
    """Counts file with three populations and twelve sites."""
    path = tmp_path / "test.cf"
    path.write_text(COUNTS_CONTENT)
    return path


@pytest.fixture
def tree_file(tmp_path):
    """Population tree matching counts_file."""
    path = tmp_path / "test_tree.nwk"
    path.write_text(TREE_CONTENT)
    return path


@pytest.fixture
def weighted_data(counts_file):
    """Weighted PoMo data with N=4 (22 states)."""
    return PoMoData.from_counts_file(counts_file, virtual_pop_size=4)


@pytest.fixture
def sampled_data(counts_file):
    """Sampled PoMo data with N=4 and a fixed seed."""
    return PoMoData.from_counts_file(
        counts_file, virtual_pop_size=4, sampling_method=SamplingMethod.SAMPLED, seed=1
    )


@pytest.fixture(autouse=True)
def reset_pomoml_logger():
    """Undo logging configuration done by CLI runs so caplog sees records."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, "_pomoml_handler", False):
            logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
