"""Process adapters for spawning child test processes."""
