"""Giveaways: eligibility gates and provably-fair winner selection."""
