"""Fit command implementation."""

import sys
import dataclasses
from pathlib import Path
from typing import Optional

from pomoml.api import fit_pomo
from pomoml.config import PoMoConfig, Verbosity
from pomoml.diagnostics import configure_logging
from pomoml.errors import PoMoError


def load_config(
    config_file: Optional[Path],
    verbose: bool,
    quiet: bool,
    **overrides,
) -> PoMoConfig:
    """Configuration from an optional YAML file, command line flags and overrides."""
    config = PoMoConfig.from_yaml(config_file) if config_file else PoMoConfig()
    changes = {k: v for k, v in overrides.items() if v is not None}
    if verbose:
        changes['verbosity'] = Verbosity.VERBOSE
    elif quiet:
        changes['verbosity'] = Verbosity.SILENT
    return dataclasses.replace(config, **changes) if changes else config


def run_fit(
    counts: Path,
    tree: Path,
    model: str,
    virtual_pop_size: int,
    sampling: Optional[str],
    theta: str,
    freq_type: Optional[str],
    model_params: str,
    freq_params: str,
    matrix_exp: Optional[str],
    config_file: Optional[Path],
    checkpoint: Optional[Path],
    output: Optional[Path],
    format: str,
    verbose: bool,
    quiet: bool,
    maxiter: int,
    seed: Optional[int],
    optimize_branch_lengths: bool,
):
    """Fit a PoMo model."""
    try:
        config = load_config(
            config_file, verbose, quiet, matrix_exp_technique=matrix_exp, seed=seed
        )
    except PoMoError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    configure_logging(config.verbosity)

    if not quiet:
        print(f"Fitting PoMo with {model} mutation model, N={virtual_pop_size}", file=sys.stderr)
        print("=" * 80, file=sys.stderr)
        print(f"Counts: {counts}", file=sys.stderr)
        print(f"Tree:   {tree}", file=sys.stderr)
        print(file=sys.stderr)

    try:
        result = fit_pomo(
            counts,
            tree,
            model=model,
            N=virtual_pop_size,
            sampling=sampling,
            theta=theta,
            freq_type=freq_type,
            model_params=model_params,
            freq_params=freq_params,
            config=config,
            checkpoint=checkpoint,
            optimize_branch_lengths=optimize_branch_lengths,
            maxiter=maxiter,
        )
    except PoMoError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        print("Error: Model fitting failed", file=sys.stderr)
        print(f"Details: {e}", file=sys.stderr)
        sys.exit(1)

    if format == "json":
        output_text = result.to_json()
    else:
        output_text = result.summary()
        if verbose:
            output_text += "\n\n" + result.report

    if output:
        with open(output, 'w') as f:
            f.write(output_text)
        if not quiet:
            print(f"\nResults written to {output}", file=sys.stderr)
    else:
        print(output_text)
