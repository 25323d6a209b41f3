"""Summary command implementation."""

import sys
import json
from pathlib import Path
from typing import Optional

from pomoml.api import summarize_counts
from pomoml.config import PoMoConfig
from pomoml.errors import PoMoError


def run_summary(
    counts: Path,
    virtual_pop_size: int,
    sampling: str,
    format: str,
    seed: Optional[int],
):
    """Summarize a counts file."""
    try:
        result = summarize_counts(
            counts, N=virtual_pop_size, sampling=sampling, config=PoMoConfig(seed=seed)
        )
    except PoMoError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        print(f"Error: Could not summarize {counts}", file=sys.stderr)
        print(f"Details: {e}", file=sys.stderr)
        sys.exit(1)

    if format == "json":
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(result.summary())
