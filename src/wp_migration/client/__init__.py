"""HTTP clients for the source content API."""
