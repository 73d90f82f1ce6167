"""
CLI Context for managing application dependencies.

Provides a clean way to manage CLI-level dependencies like settings and the
layout handle, avoiding global state and enabling proper dependency injection.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import NotFound
from .layout import Layout
from .media_types import LAYOUT_MARKER_FILE
from .settings import Settings, create_settings_from_env


@dataclass
class CLIContext:
    """
    Shared context for CLI commands.

    Manages application-level dependencies (settings, layout) that are
    initialized once and shared across a CLI command execution.
    """
    settings: Settings
    path: Path
    _layout: Optional[Layout] = None

    @classmethod
    def from_env(cls, path: str) -> CLIContext:
        """
        Create CLI context from environment variables.

        Args:
            path: Layout directory the command operates on
        """
        settings = create_settings_from_env()
        return cls(settings=settings, path=Path(path))

    def init_layout(self) -> Layout:
        """Create or reopen the layout at ``path``."""
        self._layout = Layout.new(self.path, self.settings)
        return self._layout

    @property
    def layout(self) -> Layout:
        """
        Open the existing layout (lazy initialization).

        Raises:
            NotFound: If ``path`` holds no OCI layout
        """
        if self._layout is None:
            if not (self.path / LAYOUT_MARKER_FILE).is_file():
                raise NotFound(f"No OCI layout at {self.path}")
            self._layout = Layout.new(self.path, self.settings)
        return self._layout
