"""coopsync - Local-first data synchronization for the cooperative marketplace."""

__version__ = "0.1.0"
