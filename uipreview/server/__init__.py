"""Development server: on-demand rendering with live reload."""
