"""Infrastructure layer — database, locking, and the Ledger repository.

This layer never imports from services or commands.
"""
