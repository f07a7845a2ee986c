"""Live-event orchestration core: tournaments, bonus hunts and giveaways."""

__version__ = "0.1.0"
