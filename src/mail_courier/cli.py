# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Command-line interface for mail-courier.

Sends a single email, file upload or file deletion over the framed TCP
transport or the event topic, with the configured retry schedule.

Usage:
    mail-courier send --to user@example.com --subject "Hi" --text "Hello"
    mail-courier send --to a@example.com --to b@example.com --template welcome --mode kafka
    mail-courier upload report.pdf --folder reports --content-type application/pdf
    mail-courier delete 8f2c1e --permanent
    mail-courier config

Exit status is 0 when the request was delivered and 1 otherwise.
"""

from __future__ import annotations

import asyncio
import base64
import json
import mimetypes
import sys
from pathlib import Path
from typing import Any

import click
from pydantic import ValidationError
from rich.console import Console

from . import __version__
from .config_loader import CourierConfig, load_config
from .logger import configure_logging
from .models import EmailPayload, FileDeletePayload, FileUploadPayload
from .service import (
    DeliveryService,
    TransportMode,
    email_service,
    storage_delete_service,
    storage_upload_service,
)

console = Console()
err_console = Console(stderr=True)


def run_async(coro):
    """Execute an async coroutine synchronously from CLI context."""
    return asyncio.run(coro)


def print_error(message: str) -> None:
    err_console.print(f"[red]Error:[/red] {message}")


def print_success(message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def print_json(data: Any) -> None:
    console.print_json(json.dumps(data, indent=2, default=str))


async def _deliver(
    service: DeliveryService,
    payload: Any,
    mode: TransportMode,
    tenant_id: str | None,
    key: str | None,
    retries: int | None,
) -> bool:
    """Send with retries and always release the broker connection."""
    try:
        return await service.send_with_retry(
            payload, tenant_id=tenant_id, mode=mode, max_attempts=retries, key=key
        )
    finally:
        await service.stop()


def _load(ctx: click.Context) -> CourierConfig:
    return ctx.obj["config"]


def _finish(ok: bool, what: str, mode: TransportMode) -> None:
    if ok:
        print_success(f"{what} delivered via {mode.value}")
        return
    print_error(f"{what} could not be delivered via {mode.value}")
    sys.exit(1)


mode_option = click.option(
    "--mode",
    type=click.Choice([m.value for m in TransportMode]),
    default=TransportMode.TCP.value,
    show_default=True,
    help="Transport: framed TCP request or event topic.",
)
tenant_option = click.option("--tenant", default=None, help="Tenant id recorded in the event.")
retries_option = click.option(
    "--retries",
    type=click.IntRange(min=1),
    default=None,
    help="Total attempts (default from [retry] config).",
)


@click.group()
@click.version_option(__version__, prog_name="mail-courier")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="INI configuration file (default: $GMC_CONFIG).",
)
@click.option("--log-level", default=None, help="Logging level (default: [logging] level).")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, log_level: str | None) -> None:
    """mail-courier: deliver email and storage requests."""
    config = load_config(config_path)
    configure_logging(log_level or config.log_level)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@main.command()
@click.option("--to", "recipients", multiple=True, required=True, help="Recipient (repeatable).")
@click.option("--subject", default=None, help="Subject line.")
@click.option("--text", default=None, help="Plain text body.")
@click.option("--html", default=None, help="HTML body.")
@click.option("--from", "from_addr", default=None, help="Sender address.")
@click.option("--from-name", default=None, help="Sender display name.")
@click.option("--template", default=None, help="Server-side template name.")
@click.option("--locale", default="en", show_default=True, help="Template locale.")
@click.option(
    "--data", "data_json", default=None, help="Template variables as a JSON object."
)
@click.option(
    "--priority",
    type=click.Choice(["low", "normal", "high"]),
    default="normal",
    show_default=True,
)
@mode_option
@tenant_option
@click.option("--key", default=None, help="Explicit partition key for --mode kafka.")
@retries_option
@click.pass_context
def send(
    ctx: click.Context,
    recipients: tuple[str, ...],
    subject: str | None,
    text: str | None,
    html: str | None,
    from_addr: str | None,
    from_name: str | None,
    template: str | None,
    locale: str,
    data_json: str | None,
    priority: str,
    mode: str,
    tenant: str | None,
    key: str | None,
    retries: int | None,
) -> None:
    """Send one email."""
    try:
        data = json.loads(data_json) if data_json else None
    except json.JSONDecodeError as exc:
        print_error(f"--data is not valid JSON: {exc}")
        sys.exit(1)

    try:
        payload = EmailPayload(
            to=list(recipients),
            subject=subject,
            text=text,
            html=html,
            from_addr=from_addr,
            from_name=from_name,
            template=template,
            locale=locale,
            data=data,
            priority=priority,
        )
    except ValidationError as exc:
        print_error(f"Invalid email: {exc.errors()[0]['msg']}")
        sys.exit(1)

    transport = TransportMode(mode)
    service = email_service(_load(ctx))
    ok = run_async(_deliver(service, payload, transport, tenant, key, retries))
    _finish(ok, "Email", transport)


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--name", "file_name", default=None, help="Stored file name (default: FILE's name).")
@click.option("--folder", default=None, help="Destination folder.")
@click.option("--content-type", default=None, help="MIME type (guessed when omitted).")
@click.option("--overwrite", is_flag=True, help="Replace an existing file.")
@mode_option
@tenant_option
@retries_option
@click.pass_context
def upload(
    ctx: click.Context,
    file: Path,
    file_name: str | None,
    folder: str | None,
    content_type: str | None,
    overwrite: bool,
    mode: str,
    tenant: str | None,
    retries: int | None,
) -> None:
    """Upload FILE to the storage service."""
    content_type = content_type or mimetypes.guess_type(file.name)[0] or "application/octet-stream"
    payload = FileUploadPayload(
        file_name=file_name or file.name,
        file_content=base64.b64encode(file.read_bytes()).decode("ascii"),
        content_type=content_type,
        folder=folder,
        overwrite=overwrite,
    )
    transport = TransportMode(mode)
    service = storage_upload_service(_load(ctx))
    ok = run_async(_deliver(service, payload, transport, tenant, None, retries))
    _finish(ok, f"Upload of {payload.file_name}", transport)


@main.command()
@click.argument("file_id")
@click.option("--permanent", is_flag=True, help="Delete permanently instead of soft delete.")
@mode_option
@tenant_option
@retries_option
@click.pass_context
def delete(
    ctx: click.Context,
    file_id: str,
    permanent: bool,
    mode: str,
    tenant: str | None,
    retries: int | None,
) -> None:
    """Delete FILE_ID from the storage service."""
    try:
        payload = FileDeletePayload(file_id=file_id, permanent=permanent)
    except ValidationError as exc:
        print_error(f"Invalid file id: {exc.errors()[0]['msg']}")
        sys.exit(1)
    transport = TransportMode(mode)
    service = storage_delete_service(_load(ctx))
    ok = run_async(_deliver(service, payload, transport, tenant, None, retries))
    _finish(ok, f"Deletion of {file_id}", transport)


@main.command("config")
@click.pass_context
def show_config(ctx: click.Context) -> None:
    """Print the effective configuration as JSON."""
    print_json(_load(ctx).as_dict())


if __name__ == "__main__":
    main()
