"""threadsync command line interface."""
