"""Technical trading alert engine."""
