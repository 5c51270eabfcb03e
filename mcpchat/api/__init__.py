"""HTTP API for the desktop shell."""
