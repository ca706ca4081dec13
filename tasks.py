"""Developer tasks for stagesync, run through Invoke on top of `uv`.

Examples:
    invoke sync
    invoke tests -k reconciler
    invoke ci
"""

from __future__ import annotations

import shlex
import shutil
from pathlib import Path

from invoke import Collection, Context, task

PROJECT_ROOT = Path(__file__).parent
DIST_DIR = PROJECT_ROOT / "dist"
CHECKED_PATHS = ("src", "tests")


def _uv(ctx: Context, *args: str, echo: bool = True) -> None:
    """Run ``uv`` with ``args`` inside a PTY, echoing the command line."""
    ctx.run(shlex.join(("uv", *args)), echo=echo, pty=True, env=dict(ctx.config.run.env or {}))


@task(help={"dev": "Install the dev extra (pytest, ruff, mypy, invoke)."})
def sync(ctx: Context, dev: bool = True) -> None:
    """Create or update the project virtual environment."""
    _uv(ctx, "sync", *(("--extra", "dev") if dev else ()))


@task(help={"clean": "Delete dist/ before building."})
def build(ctx: Context, clean: bool = False) -> None:
    """Build the sdist and wheel into dist/."""
    if clean:
        shutil.rmtree(DIST_DIR, ignore_errors=True)
    _uv(ctx, "build")


@task(
    help={
        "k": "Only run tests matching this pytest -k expression.",
        "path": "Test file or directory (defaults to tests/).",
        "options": "Extra pytest flags, passed through unchanged.",
    }
)
def tests(ctx: Context, k: str = "", path: str = "tests", options: str = "") -> None:
    """Run the pytest suite.

    Args:
        ctx: Invoke execution context.
        k: Selection expression forwarded as ``-k``.
        path: What pytest should collect.
        options: Additional pytest command line flags.
    """
    args = ["run", "pytest"]
    if k:
        args += ["-k", k]
    args += shlex.split(options)
    if path:
        args.append(path)
    _uv(ctx, *args)


@task(help={"fix": "Let Ruff rewrite fixable problems.", "check_format": "Also run ruff format --check."})
def lint(ctx: Context, fix: bool = False, check_format: bool = False) -> None:
    """Lint the sources and tests with Ruff."""
    if check_format:
        _uv(ctx, "run", "ruff", "format", "--check", *CHECKED_PATHS)
    _uv(ctx, "run", "ruff", "check", *CHECKED_PATHS, *(("--fix",) if fix else ()))


@task
def mypy(ctx: Context) -> None:
    """Type-check src/ with the settings from pyproject.toml."""
    _uv(ctx, "run", "mypy", "src")


@task
def ci(ctx: Context) -> None:
    """Run the same checks as continuous integration."""
    ctx.invoke(lint, check_format=True)
    ctx.invoke(mypy)
    ctx.invoke(tests)


namespace = Collection(sync, build, tests, lint, mypy, ci)
