"""cachekill - safely clean development and build caches."""

__version__ = "0.2.0"
