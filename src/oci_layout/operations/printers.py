"""
Human-readable output formatting.

Centralizes all CLI output formatting so commands stay thin and focused.
"""
from __future__ import annotations

from pathlib import Path
from typing import List, Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..content import StoreImage
from ..media_types import OCI_REF_NAME_ANNOTATION
from ..models import Descriptor

_console = Console(highlight=False, soft_wrap=True)


def _format_bytes(size: int) -> str:
    """Format byte count as human-readable string."""
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024.0:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024.0
    return f"{value:.1f} TB"


def print_init_summary(path: Path) -> None:
    _console.print(f"Initialized OCI layout at {escape(str(path))}")


def print_images(descs: Sequence[Descriptor]) -> None:
    """
    Print indexed images, one per line, in index order.

    Digests are printed in full so the output can be fed back to
    ``inspect``/``rm``.
    """
    if not descs:
        _console.print("[dim]No images[/]")
        return

    for desc in descs:
        ref_name = desc.annotation(OCI_REF_NAME_ANNOTATION) or "-"
        _console.print(f"[cyan]{desc.digest}[/]  [yellow]{escape(ref_name)}[/]  {_format_bytes(desc.size)}")


def print_image_detail(image: StoreImage) -> None:
    """
    Print an image's manifest, config and layers.

    Args:
        image: Store-backed image view
    """
    desc = image.descriptor()
    _console.print(f"[bold]Image:[/] {desc.digest}")
    ref_name = desc.annotation(OCI_REF_NAME_ANNOTATION)
    if ref_name:
        _console.print(f"[bold]Ref name:[/] {escape(ref_name)}")
    _console.print(f"[bold]Media type:[/] {desc.media_type}")
    config = image.config()
    _console.print(f"[bold]Config:[/] {config.digest} ({config.media_type}, {_format_bytes(config.size)})")

    layers: List[Descriptor] = image.layers()
    table = Table(title="Layers")
    table.add_column("#", justify="right")
    table.add_column("Digest", style="cyan", overflow="fold")
    table.add_column("Media type")
    table.add_column("Size", justify="right")
    for i, layer in enumerate(layers):
        table.add_row(str(i), layer.digest, layer.media_type, _format_bytes(layer.size))
    _console.print(table)


def print_add_summary(desc: Descriptor, replaced: Sequence[Descriptor] = ()) -> None:
    _console.print(f"Added image {desc.digest}")
    for old in replaced:
        _console.print(f"  replaced {old.digest}")


def print_removed(removed: Sequence[Descriptor]) -> None:
    for desc in removed:
        _console.print(f"Removed {desc.digest}")
