"""Infrastructure layer - Adapters for the network, the filesystem and processes."""
