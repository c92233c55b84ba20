"""Cached size comparison between rclone remotes and local directories."""

__version__ = "0.1.0"
