"""Rolling-checksum block matching, MD4 checksums and HTTP range fetching for partial downloads."""

__version__ = "0.1.0"