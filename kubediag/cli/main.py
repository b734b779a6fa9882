"""kubediag command-line interface.

Commands:
    kubediag run                               Run the operator in the foreground.
    kubediag list [--namespace NS] [--json]    List diagnoses via the HTTP API.
    kubediag version                           Print version and exit.

``list`` calls the HTTP API at http://localhost:8081 (configurable via
``--api-url``). Output is colourised for readability.
"""

from __future__ import annotations

import asyncio
import json

import click
import httpx

from kubediag import __version__

_DEFAULT_API_URL = "http://localhost:8081"

# ---------------------------------------------------------------------------
# Colour helpers
# ---------------------------------------------------------------------------

_PHASE_COLORS: dict[str, str] = {
    "Completed": "green",
    "Failed": "red",
    "": "yellow",
}


def _styled_phase(phase: str) -> str:
    color = _PHASE_COLORS.get(phase, "white")
    return click.style(phase or "Pending", fg=color, bold=True)


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------


def _get(api_url: str, path: str, params: dict[str, str] | None = None) -> dict[str, object]:
    """Perform a GET request and return the parsed JSON body.

    Raises click.ClickException on connection errors or non-2xx responses.
    """
    url = api_url.rstrip("/") + path
    try:
        with httpx.Client(timeout=30.0) as client:
            response = client.get(url, params=params or {})
        response.raise_for_status()
        return response.json()  # type: ignore[no-any-return]
    except httpx.ConnectError as err:
        raise click.ClickException(f"Cannot connect to kubediag API at {api_url}. Is the operator running?") from err
    except httpx.HTTPStatusError as exc:
        _handle_error_response(exc.response)
        raise


def _handle_error_response(response: httpx.Response) -> None:
    """Parse an error response body and raise a friendly ClickException."""
    try:
        data: dict[str, object] = response.json()
        msg = f"{data.get('error', 'ERROR')}: {data.get('detail', 'Unknown error')}"
    except ValueError:
        msg = f"HTTP {response.status_code}: {response.text[:200]}"
    raise click.ClickException(msg)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--api-url",
    default=_DEFAULT_API_URL,
    envvar="KUBEDIAG_API_URL",
    show_default=True,
    help="kubediag HTTP API base URL.",
)
@click.pass_context
def cli(ctx: click.Context, api_url: str) -> None:
    """kubediag: automatic diagnosis of failing Kubernetes pods."""
    ctx.ensure_object(dict)
    ctx.obj["api_url"] = api_url


# ---------------------------------------------------------------------------
# kubediag version
# ---------------------------------------------------------------------------


@cli.command("version")
def cmd_version() -> None:
    """Print the kubediag version and exit."""
    click.echo(f"kubediag {__version__}")


# ---------------------------------------------------------------------------
# kubediag run
# ---------------------------------------------------------------------------


@cli.command("run")
def cmd_run() -> None:
    """Run the operator until SIGTERM or SIGINT.

    Configuration is read from the environment (AI_API_URL, AI_API_KEY,
    AI_MODEL and the KUBEDIAG_* variables).
    """
    from kubediag.app import main

    asyncio.run(main())


# ---------------------------------------------------------------------------
# kubediag list
# ---------------------------------------------------------------------------


@cli.command("list")
@click.option(
    "--namespace",
    "-n",
    default=None,
    metavar="NS",
    help="Filter to a specific namespace.  Omit for all namespaces.",
)
@click.option(
    "--json",
    "output_json",
    is_flag=True,
    default=False,
    help="Print raw JSON response.",
)
@click.pass_context
def cmd_list(ctx: click.Context, namespace: str | None, output_json: bool) -> None:
    """List PodDiagnosis resources and their results."""
    api_url: str = ctx.obj["api_url"]
    params: dict[str, str] = {}
    if namespace:
        params["namespace"] = namespace

    data = _get(api_url, "/api/v1/diagnoses", params=params or None)

    if output_json:
        click.echo(json.dumps(data, indent=2))
        return

    _print_diagnoses(data)


def _print_diagnoses(data: dict[str, object]) -> None:
    """Pretty-print a DiagnosisListResponse dict."""
    items: list[dict[str, object]] = data.get("items", [])  # type: ignore[assignment]
    if not items:
        click.echo(click.style("No diagnoses found.", fg="green"))
        return

    click.echo(click.style(f"Diagnoses ({len(items)}):", bold=True))
    click.echo("")
    for item in items:
        phase = str(item.get("phase", ""))
        click.echo(
            f"  {item.get('namespace', '?')}/{click.style(str(item.get('name', '?')), bold=True)}"
            f"  pod={item.get('pod_name', '?')}  [{_styled_phase(phase)}]"
        )
        trigger = str(item.get("trigger_reason", ""))
        if trigger:
            click.echo(f"    {click.style('Trigger:', fg='cyan')}     {trigger}")
        root_cause = str(item.get("root_cause", ""))
        if root_cause:
            click.echo(f"    {click.style('Root cause:', fg='cyan')}  {root_cause}")
        suggestion = str(item.get("suggestion", ""))
        if suggestion:
            click.echo(f"    {click.style('Suggestion:', fg='cyan')}  {suggestion}")
        diagnosis_time = item.get("diagnosis_time")
        if diagnosis_time:
            click.echo(click.style(f"    Diagnosed at {diagnosis_time}", fg="bright_black"))
    click.echo("")


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    cli()
