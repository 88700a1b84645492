"""ul.cfg game storage, virtual memory card images and release update checks for Open PS2 Loader."""

__version__ = "3.1.0"