"""Inspect virtual machine disk images and memory snapshots: ext2 directory watching, page-table walks and kernel page-directory search."""

__version__ = "0.1.0"