"""Client-side tracking of asynchronous generation jobs."""

__version__ = "0.1.0"
