from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError

from logdiag.config import merge_payload, normalize_proxy_section, proxy_defaults
from logdiag.log_setup import configure_logging
from logdiag.proxy import prepare_log_files, run_proxy
from logdiag.schema import ProxyConfig

app = typer.Typer(add_completion=False)


def build_config(
    *,
    name: Optional[str] = None,
    verbose: Optional[int] = None,
    debounce_ms: Optional[int] = None,
    backend: Optional[List[str]] = None,
    keep_logs: bool = False,
    config_path: Optional[Path] = None,
    root: Optional[Path] = None,
) -> ProxyConfig:
    defaults = normalize_proxy_section(proxy_defaults(root=root, config_path=config_path))
    payload = {
        "name": name,
        "verbosity": verbose,
        "debounce_ms": debounce_ms,
        "backend": list(backend) if backend else None,
        "truncate_logs": False if keep_logs else None,
    }
    return ProxyConfig.model_validate(merge_payload(payload, defaults))


@app.command(help="Merge diagnostics mined from build/run logs into an LSP session.")
def main(
    name: Optional[str] = typer.Option(
        None,
        "--name",
        "-n",
        help="Log basename; logs are <name>_build.log and <name>_run.log.",
    ),
    verbose: Optional[int] = typer.Option(None, "--verbose", "-v", help="Verbosity level."),
    debounce_ms: Optional[int] = typer.Option(None, "--debounce-ms"),
    backend: Optional[List[str]] = typer.Option(
        None,
        "--backend",
        help="Backend analyzer argv element; repeat for each argument (--backend=--flag for dashes).",
    ),
    keep_logs: bool = typer.Option(False, "--keep-logs", help="Do not truncate the logs."),
    config: Optional[Path] = typer.Option(None, "--config"),
) -> None:
    try:
        proxy_config = build_config(
            name=name,
            verbose=verbose,
            debounce_ms=debounce_ms,
            backend=backend,
            keep_logs=keep_logs,
            config_path=config,
        )
    except ValidationError as exc:
        typer.echo(f"Invalid configuration: {exc}", err=True)
        raise typer.Exit(code=2)
    configure_logging(proxy_config.verbosity)
    prepare_log_files(proxy_config)
    asyncio.run(run_proxy(proxy_config))
