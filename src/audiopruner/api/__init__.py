"""HTTP API for AudioPruner."""
