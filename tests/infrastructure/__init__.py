"""Test infrastructure: data generators and test doubles."""
