"""HTTP adapter over the recording service."""
