"""Command-line interface for orderlens."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import click
from bs4 import BeautifulSoup

from orderlens import __version__
from orderlens.collaborators import ConfigCredentialStore, RecordingPresenter, StaticPage, StaticSettingsProvider
from orderlens.config import Config, load_config
from orderlens.detection import classify_order_details_url, classify_page, classify_url, detect_store
from orderlens.exceptions import ConfigurationError
from orderlens.extractor import DOMFallbackExtractor, LLMExtractor, PageSanitizer
from orderlens.observability import configure_logging, export_prometheus
from orderlens.orchestrator import DetectionOrchestrator


async def _no_wait(_seconds: float) -> None:
    return None


def _read_html(path: str) -> str:
    return Path(path).read_text(encoding="utf-8", errors="replace")


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", type=click.Path(exists=True, dir_okay=False), help="Configuration file path")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level (overrides the configuration file)",
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], log_level: Optional[str]) -> None:
    """orderlens - order confirmation detection and product extraction."""
    try:
        loaded = load_config(Path(config) if config else None)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    if log_level:
        loaded = loaded.model_copy(update={"monitoring": loaded.monitoring.model_copy(update={"log_level": log_level})})
    configure_logging(loaded.monitoring)

    ctx.ensure_object(dict)
    ctx.obj["config"] = loaded


@cli.command("classify-url")
@click.argument("url")
@click.pass_context
def classify_url_command(ctx: click.Context, url: str) -> None:
    """Score a URL against the confirmation and order-details tables."""
    config: Config = ctx.obj["config"]
    store = detect_store(url)
    output = {
        "confirmation": classify_url(url, config=config.detection).to_dict(),
        "orderDetails": classify_order_details_url(url, config=config.detection).to_dict(),
        "store": store.name if store else None,
    }
    click.echo(json.dumps(output, indent=2))


@cli.command()
@click.argument("html_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--text-only", is_flag=True, help="Print only the plain-text projection")
@click.pass_context
def sanitize(ctx: click.Context, html_file: str, text_only: bool) -> None:
    """Sanitize a saved HTML page and print its projections."""
    config: Config = ctx.obj["config"]
    content = PageSanitizer(config.sanitizer).sanitize(_read_html(html_file))
    if text_only:
        click.echo(content.text)
    else:
        click.echo(json.dumps({"html": content.html, "text": content.text}, indent=2))


@cli.command()
@click.argument("html_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--url", required=True, help="URL the page was saved from")
@click.option("--title", default="", help="Document title of the page")
@click.option("--no-wait", is_flag=True, help="Skip the dynamic-content wait")
@click.option("--hide-order-details", is_flag=True, help="Do not prompt on past-order details pages")
@click.option("--metrics", "show_metrics", is_flag=True, help="Print Prometheus metrics after the run")
@click.pass_context
def analyze(
    ctx: click.Context,
    html_file: str,
    url: str,
    title: str,
    no_wait: bool,
    hide_order_details: bool,
    show_metrics: bool,
) -> None:
    """Run the full detection pipeline over a saved HTML page."""
    config: Config = ctx.obj["config"]
    page = StaticPage(url=url, html=_read_html(html_file), title=title)

    if not title:
        # Fall back to the document's own title
        page.title = document_title(page.html)

    async def run_analysis() -> None:
        presenter = RecordingPresenter()
        async with LLMExtractor(config.llm, credentials=ConfigCredentialStore(config.llm)) as llm_extractor:
            orchestrator = DetectionOrchestrator(
                config,
                llm_extractor=llm_extractor,
                dom_extractor=DOMFallbackExtractor(),
                presenter=presenter,
                settings_provider=StaticSettingsProvider(show_on_order_details=not hide_order_details),
                sleep=_no_wait if no_wait else asyncio.sleep,
            )
            outcome = await orchestrator.run(page)

        if outcome is None:
            content = PageSanitizer(config.sanitizer).sanitize(page.html)
            result = classify_page(url, page.title, content.text, config=config.detection)
            click.echo(json.dumps({"presented": False, "classification": result.to_dict()}, indent=2))
        else:
            click.echo(json.dumps({"presented": True, **outcome.to_dict()}, indent=2))

    asyncio.run(run_analysis())

    if show_metrics:
        click.echo(export_prometheus())


def document_title(html: str) -> str:
    """Text of the first <title> element, or empty."""
    title = BeautifulSoup(html, "html.parser").find("title")
    return title.get_text(strip=True) if title else ""


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
