"""feedsync command-line interface."""
