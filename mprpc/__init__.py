"""RPC framework with ZooKeeper service discovery, consistent-hash routing and example services."""

__version__ = "0.1.0"