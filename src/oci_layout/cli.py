"""
OCI Layout CLI

Implements CLI verbs over a local OCI image layout:
- init: Create (or reopen) a layout directory
- images: List indexed images
- add: Store files as the layers of a new image and index it
- inspect: Show an indexed image's config and layers
- cat: Write a blob to stdout
- rm: Unregister an image (blobs are kept)
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer

from .cli_context import CLIContext
from .content import MemoryImage
from .digest import parse_digest
from .matcher import EVERY, Digest, RefName
from .media_types import OCI_GENERIC_LAYER
from .operations import run_and_exit
from .operations.printers import (
    print_add_summary, print_image_detail, print_images, print_init_summary, print_removed
)

app = typer.Typer(name="oci-layout", help="Local OCI image layout CLI")


@app.callback()
def _configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
) -> None:
    """Configure logging for all commands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@app.command()
def init(
    path: str = typer.Argument(..., help="Layout directory")
) -> None:
    """Create or reopen an OCI layout."""

    def _init() -> None:
        context = CLIContext.from_env(path)
        layout = context.init_layout()
        print_init_summary(layout.path)

    run_and_exit(_init)


@app.command()
def images(
    path: str = typer.Argument(..., help="Layout directory"),
    ref_name: Optional[str] = typer.Option(None, "--ref-name", help="Only show images with this ref name")
) -> None:
    """List indexed images."""

    def _images() -> None:
        context = CLIContext.from_env(path)
        match = RefName(ref_name) if ref_name else EVERY
        print_images(context.layout.indexer.list(match))

    run_and_exit(_images)


@app.command()
def add(
    path: str = typer.Argument(..., help="Layout directory"),
    files: List[Path] = typer.Argument(..., help="Files stored as image layers, in order"),
    ref_name: Optional[str] = typer.Option(None, "--ref-name", help="Ref name annotation for the image"),
    media_type: str = typer.Option(OCI_GENERIC_LAYER, "--media-type", help="Media type of every layer"),
    replace: bool = typer.Option(False, "--replace", help="Replace images that already carry --ref-name")
) -> None:
    """Store files as a new image and add it to the index."""

    def _add() -> None:
        if replace and not ref_name:
            raise ValueError("--replace requires --ref-name")

        context = CLIContext.from_env(path)
        image = MemoryImage.build(
            [f.read_bytes() for f in files],
            layer_media_type=media_type,
            ref_name=ref_name,
            algorithm=context.settings.digest_algorithm,
        )

        if replace:
            replaced = context.layout.replace_image(image, RefName(ref_name))
        else:
            context.layout.add_image(image)
            replaced = []
        print_add_summary(image.descriptor(), replaced)

    run_and_exit(_add)


@app.command()
def inspect(
    path: str = typer.Argument(..., help="Layout directory"),
    digest: str = typer.Argument(..., help="Image digest")
) -> None:
    """Show an image's config and layers."""

    def _inspect() -> None:
        parse_digest(digest)
        context = CLIContext.from_env(path)
        layout = context.layout
        desc = layout.indexer.find(Digest(digest))
        print_image_detail(layout.image(desc))

    run_and_exit(_inspect)


@app.command()
def cat(
    path: str = typer.Argument(..., help="Layout directory"),
    digest: str = typer.Argument(..., help="Blob digest")
) -> None:
    """Write a blob's verified content to stdout."""

    def _cat() -> None:
        context = CLIContext.from_env(path)
        typer.echo(context.layout.store.read(digest), nl=False)

    run_and_exit(_cat)


@app.command()
def rm(
    path: str = typer.Argument(..., help="Layout directory"),
    digest: str = typer.Argument(..., help="Image digest")
) -> None:
    """Remove an image from the index. Its blobs stay in the store."""

    def _rm() -> None:
        parse_digest(digest)
        context = CLIContext.from_env(path)
        print_removed(context.layout.remove_image(Digest(digest)))

    run_and_exit(_rm)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
