"""Document store access layer."""
