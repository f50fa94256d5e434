"""Terminal client runtime: API access, client tools and session autosave."""
