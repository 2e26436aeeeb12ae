"""Channel poster HTTP API."""
