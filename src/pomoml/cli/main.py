"""Main CLI application for pomoml."""

import typer
from pathlib import Path
from typing import Optional
from enum import Enum

from ..config import MatrixExpTechnique, SamplingMethod

app = typer.Typer(
    name="pomoml",
    help="Polymorphism-aware phylogenetic models (PoMo) for population counts data",
    no_args_is_help=True,
)


class OutputFormat(str, Enum):
    """Output format."""
    TEXT = "text"
    JSON = "json"


@app.command()
def fit(
    counts: Path = typer.Option(
        ...,
        "--counts", "-s",
        help="Counts file with allele counts per population",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    tree: Path = typer.Option(
        ...,
        "--tree", "-t",
        help="Population tree file (Newick format)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    model: str = typer.Option(
        "HKY",
        "--model", "-m",
        help="DNA mutation model (JC, HKY, GTR, UNREST, ...)",
    ),
    virtual_pop_size: int = typer.Option(
        9,
        "--virtual-pop-size", "-N",
        help="Virtual population size",
        min=2,
    ),
    sampling: Optional[SamplingMethod] = typer.Option(
        None,
        "--sampling",
        help="Treatment of population counts (default: from config)",
    ),
    theta: str = typer.Option(
        "",
        "--theta",
        help="Level of polymorphism: empty to estimate, EMP for Watterson's theta, or a value",
    ),
    freq_type: Optional[str] = typer.Option(
        None,
        "--freq-type", "-f",
        help="Boundary frequencies: equal, estimate, empirical, user (or FQ, FO, F, FU)",
    ),
    model_params: str = typer.Option(
        "",
        "--model-params",
        help="Fixed mutation rates, comma separated",
    ),
    freq_params: str = typer.Option(
        "",
        "--freq-params",
        help="User-defined boundary frequencies (A,C,G,T)",
    ),
    matrix_exp: Optional[MatrixExpTechnique] = typer.Option(
        None,
        "--matrix-exp",
        help="Matrix exponential technique for non-reversible models",
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="YAML configuration file",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    checkpoint: Optional[Path] = typer.Option(
        None,
        "--checkpoint",
        help="JSON checkpoint to restore from and save to",
        dir_okay=False,
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Output file (default: stdout)",
    ),
    format: OutputFormat = typer.Option(
        OutputFormat.TEXT,
        "--format",
        help="Output format",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Show model diagnostics and optimization progress",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet", "-q",
        help="Minimal output",
    ),
    maxiter: int = typer.Option(
        200,
        "--maxiter",
        help="Maximum optimization iterations",
        min=1,
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Random seed for sampled counts",
    ),
    fix_branch_lengths: bool = typer.Option(
        False,
        "--fix-branch-lengths",
        help="Keep the branch lengths of the input tree",
    ),
):
    """
    Fit a PoMo model to population counts on a tree.

    Example:
        pomoml fit -s primates.cf -t primates.nwk -m HKY -N 9
        pomoml fit -s primates.cf -t primates.nwk -m GTR --theta EMP --format json
    """
    from .commands.fit import run_fit

    run_fit(
        counts=counts,
        tree=tree,
        model=model,
        virtual_pop_size=virtual_pop_size,
        sampling=sampling.value if sampling else None,
        theta=theta,
        freq_type=freq_type,
        model_params=model_params,
        freq_params=freq_params,
        matrix_exp=matrix_exp.value if matrix_exp else None,
        config_file=config,
        checkpoint=checkpoint,
        output=output,
        format=format.value,
        verbose=verbose,
        quiet=quiet,
        maxiter=maxiter,
        seed=seed,
        optimize_branch_lengths=not fix_branch_lengths,
    )


@app.command()
def summary(
    counts: Path = typer.Option(
        ...,
        "--counts", "-s",
        help="Counts file with allele counts per population",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    virtual_pop_size: int = typer.Option(
        9,
        "--virtual-pop-size", "-N",
        help="Virtual population size",
        min=2,
    ),
    sampling: SamplingMethod = typer.Option(
        SamplingMethod.WEIGHTED,
        "--sampling",
        help="Treatment of population counts",
    ),
    format: OutputFormat = typer.Option(
        OutputFormat.TEXT,
        "--format",
        help="Output format",
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Random seed for sampled counts",
    ),
):
    """
    Report empirical boundary frequencies and Watterson's theta.

    Example:
        pomoml summary -s primates.cf -N 9
    """
    from .commands.summary import run_summary

    run_summary(
        counts=counts,
        virtual_pop_size=virtual_pop_size,
        sampling=sampling.value,
        format=format.value,
        seed=seed,
    )


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
