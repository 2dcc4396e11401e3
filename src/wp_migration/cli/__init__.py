"""Command-line interface for WP Bridge."""
