"""kube-console: cluster resource watches and interactive pod sessions."""

from kube_console.__version__ import __version__

__all__ = ["__version__"]
