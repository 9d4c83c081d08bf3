"""Template loading, document conversion and page rendering."""
