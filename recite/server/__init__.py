"""HTTP API for managing records and driving playback."""
