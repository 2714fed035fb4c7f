"""Small shared helpers for isaac-stream."""
