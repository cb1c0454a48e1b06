"""Kudos points backend: ledger, rewards, recognitions and allocation."""
