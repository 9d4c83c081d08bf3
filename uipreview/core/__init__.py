"""Domain models and error types shared across uipreview."""
