"""Data models shared across kubediag components."""
