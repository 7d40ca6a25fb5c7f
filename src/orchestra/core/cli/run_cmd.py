"""orchestra run: start the orchestration loop."""

from __future__ import annotations

import asyncio

import click


@click.command()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="YAML or JSON config file.")
@click.option("--workspace", type=click.Path(file_okay=False), help="Project workspace directory.")
@click.option("--model", help="litellm model name, e.g. ollama/qwen3:1.7b.")
@click.option("--max-cycles", type=int, help="Stop after this many cycles.")
@click.option("--verbose", "-v", is_flag=True, help="Log at DEBUG level.")
def run(config_path: str | None, workspace: str | None, model: str | None, max_cycles: int | None, verbose: bool) -> None:
    """Run the orchestrator loop in the terminal."""
    from loguru import logger

    from orchestra.core.cli.common import configure_logging, create_loop, load_config
    from orchestra.core.exceptions import OrchestraError

    try:
        config = load_config(config_path)
        if workspace:
            config.set("paths.workspace_dir", workspace)
        if model:
            config.set("llm.model", model)
        if max_cycles is not None:
            config.set("loop.max_cycles", max_cycles)

        configure_logging(config, verbose)
        loop = create_loop(config)

        click.echo(f"Workspace: {loop.workspace.root}")
        click.echo(f"Model: {config.get('llm.model')}")
        click.echo("Press Ctrl+C to stop.\n")

        cycles = asyncio.run(loop.run())
    except OrchestraError as e:
        logger.error(str(e))
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1) from e
    except KeyboardInterrupt:
        click.echo("\nInterrupted.")
        return

    click.echo(f"Stopped after {cycles} cycle(s).")
