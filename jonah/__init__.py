"""Jonah: passage history, rewind and URL-fragment bookmarks for hypertext stories."""

__version__ = "0.1.0"
