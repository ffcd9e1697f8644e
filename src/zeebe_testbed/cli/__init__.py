"""Command-line interface (``zeebe-testbed``)."""
