"""Version information for kube_console."""

__version__ = "0.3.0"
