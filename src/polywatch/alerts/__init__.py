"""Alert ranking, cooldown dedup, rendering and delivery sinks."""
