"""Engine lifecycle and service manager integration."""
