"""Logging configuration for kube_console."""

from kube_console.logging.config import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
