"""kubediag - automatic root-cause diagnosis of failing Kubernetes pods."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("kubediag")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
