"""Signal catalog loaders."""
