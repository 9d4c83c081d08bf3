"""uipreview - Preview-page renderer and packager for documentation UI bundles.

Renders content documents through Jinja2 layouts, either on demand behind a
live-reloading development server or once as a batch build, and packs the
finished UI tree into a distributable archive.
"""

__version__ = "0.1.0"

# Configure logging for library use
import logging

logging.getLogger(__name__).addHandler(logging.NullHandler())

# Re-export main CLI entry point
from .cli import main

__all__ = ["main"]
