"""Configuration resolution: defaults, config file, command line."""
