"""Shared utilities for QTweet CLI commands."""

from rich.console import Console

console = Console()
