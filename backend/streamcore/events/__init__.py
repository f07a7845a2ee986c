"""Stream events: lifecycle, tournament brackets and bonus hunts."""
