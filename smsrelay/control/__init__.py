"""HTTP bridge to the command surface."""
