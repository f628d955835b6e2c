"""promptbench CLI — run the API server, test prompts and inspect analytics.

Usage:
    promptbench serve --port 5001
    promptbench test <prompt-id> data.json
    promptbench analytics --prompt <prompt-id> --json
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="promptbench",
    help="promptbench — build questionnaire prompts, version them, and test them against an LLM.",
    no_args_is_help=True,
)


def _init_logging(level: str) -> None:
    from promptbench.logging_setup import setup_logging

    setup_logging(level=level)


def _parse_date(value: Optional[str]):
    return datetime.strptime(value, "%Y-%m-%d").date() if value else None


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", "-H", help="Bind host (default: from .env)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port (default: from .env)"),
    master_key: Optional[str] = typer.Option(None, "--master-key", help="Require this bearer token on /api"),
    env_file: Optional[Path] = typer.Option(None, "--env-file", help="Path to .env file (default: .env)"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes (dev mode)"),
):
    """Start the HTTP API server.

    Example:
        promptbench serve
        promptbench serve --port 8080 --master-key sk-bench-123
    """
    import uvicorn
    from promptbench.env_config import check_api_key, get_env_config
    from promptbench.server import create_app

    env = get_env_config(str(env_file) if env_file else None)
    _init_logging(env.log_level)

    create_app(
        master_key=master_key,
        dotenv_path=str(env_file) if env_file else None,
    )

    effective_host = host or env.host
    effective_port = port or env.port
    auth_status = "ON (PROMPTBENCH_MASTER_KEY)" if (master_key or env.master_key) else "OFF (no key set)"
    key_status = check_api_key(env)

    typer.echo(f"\n\U0001f9ea promptbench API Server")
    typer.echo(f"   http://{effective_host}:{effective_port}/api")
    typer.echo(f"   Model: {env.model} | API key: {key_status['status']} | Auth: {auth_status}")
    typer.echo(f"   Database: {env.db_path}")
    typer.echo(f"{'='*60}\n")

    uvicorn.run(
        "promptbench.server:app",
        host=effective_host,
        port=effective_port,
        reload=reload,
        log_level=env.log_level,
    )


@app.command()
def test(
    prompt_id: str = typer.Argument(..., help="Id of a saved prompt"),
    data_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON or text file to analyze"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Override the completion model"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output the stored test result as JSON"),
    env_file: Optional[Path] = typer.Option(None, "--env-file", help="Path to .env file (default: .env)"),
):
    """Run a saved prompt against a data file and store the result."""
    from promptbench.env_config import get_env_config
    from promptbench.errors import PromptBenchError
    from promptbench.models import TestRequest
    from promptbench.service import PromptBench
    from promptbench.uploads import parse_content

    env = get_env_config(str(env_file) if env_file else None)
    if model:
        env.model = model
    _init_logging(env.log_level)

    payload = parse_content(data_file.read_text(encoding="utf-8", errors="replace"), data_file.name)
    bench = PromptBench.from_env(env)
    try:
        result = asyncio.run(bench.run_test(TestRequest(prompt_id=prompt_id, json_data=payload)))
    except PromptBenchError as e:
        typer.echo(f"❌ {e.message}", err=True)
        if e.details:
            typer.echo(f"   {e.details}", err=True)
        raise typer.Exit(code=1)
    finally:
        bench.close()

    if json_output:
        typer.echo(json.dumps(result.to_api(), indent=2))
        return

    r = result.result
    typer.echo(f"\n{'='*60}")
    typer.echo(f"\U0001f9ea {result.prompt_name} v{result.prompt_version} [{r.model}]")
    typer.echo(f"{'='*60}")
    typer.echo(f"   Confidence: {r.confidence:.2f} | Time: {r.processing_time_ms}ms | Tokens: {r.tokens_used} | Cost: ${r.cost_usd:.4f}")
    if r.insights:
        typer.echo(f"\n   Insights:")
        for insight in r.insights:
            typer.echo(f"     - {insight}")
    typer.echo(f"\n{r.chat_gpt_response}")
    typer.echo(f"\n{'='*60}")


@app.command()
def analytics(
    prompt_id: Optional[str] = typer.Option(None, "--prompt", "-P", help="Per-day stats for one prompt"),
    start_date: Optional[str] = typer.Option(None, "--start", help="First day (YYYY-MM-DD), with --prompt"),
    end_date: Optional[str] = typer.Option(None, "--end", help="Last day (YYYY-MM-DD), with --prompt"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
    env_file: Optional[Path] = typer.Option(None, "--env-file", help="Path to .env file (default: .env)"),
):
    """Show test statistics per prompt, or per day for one prompt.

    Example:
        promptbench analytics
        promptbench analytics --prompt 3f2a... --start 2026-01-01 --json
    """
    from promptbench.env_config import get_env_config
    from promptbench.service import PromptBench

    env = get_env_config(str(env_file) if env_file else None)
    bench = PromptBench.from_env(env)
    try:
        if prompt_id:
            rows = [s.to_api() for s in bench.prompt_analytics(prompt_id, _parse_date(start_date), _parse_date(end_date))]
        else:
            rows = [s.to_api() for s in bench.overall_analytics()]
    finally:
        bench.close()

    if json_output:
        typer.echo(json.dumps(rows, indent=2))
        return

    typer.echo(f"\n\U0001f4ca promptbench Analytics")
    typer.echo(f"{'='*60}")
    if not rows:
        typer.echo("   No test results yet.")
    for row in rows:
        label = row["date"] if prompt_id else f"{row['promptName']} v{row['version']}"
        conf = f"{row['avgConfidence']:.2f}" if row["avgConfidence"] is not None else "-"
        ms = f"{row['avgProcessingTime']:.0f}ms" if row["avgProcessingTime"] is not None else "-"
        typer.echo(
            f"   {label:<30s} tests={row['totalTests']:<4d} conf={conf:<5s} time={ms:<8s} "
            f"tokens={row['totalTokens']} cost=${row['totalCost']:.4f}"
        )
    typer.echo(f"{'='*60}")


@app.command()
def config(
    env_file: Optional[Path] = typer.Option(None, "--env-file", help="Path to .env file (default: .env)"),
):
    """Show the resolved configuration (the API key itself is never printed)."""
    from promptbench.env_config import check_api_key, get_env_config

    env = get_env_config(str(env_file) if env_file else None)
    key = check_api_key(env)

    typer.echo(f"\n⚙️  promptbench Config")
    typer.echo(f"{'='*60}")
    typer.echo(f"   API key:     {key['detail']}")
    typer.echo(f"   Model:       {env.model} (max_tokens={env.max_tokens}, temperature={env.temperature})")
    typer.echo(f"   Retry:       {env.max_attempts} attempts, first delay {env.retry_delay}s")
    typer.echo(f"   Database:    {env.db_path}")
    typer.echo(f"   Uploads:     {env.upload_dir} (max {env.max_upload_mb} MB)")
    typer.echo(f"   Server:      {env.host}:{env.port} | Auth: {'on' if env.master_key else 'off'}")
    typer.echo(f"   Log level:   {env.log_level}")
    typer.echo(f"{'='*60}")


if __name__ == "__main__":
    app()
