"""Metastore: storage of token project metadata and images, addressed by chain ID and token address."""
