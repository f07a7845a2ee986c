"""Provably-fair selection."""
