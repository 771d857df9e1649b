"""Wire protocol, UDP fragmentation, small utilities and congestion control building blocks for a QUIC-based proxy."""

__version__ = "0.1.0"