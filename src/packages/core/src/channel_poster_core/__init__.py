"""Channel poster core library."""
