"""HTTP probes, metrics, and the read-only diagnosis API."""

from kubediag.api.app import create_app

__all__ = ["create_app"]
