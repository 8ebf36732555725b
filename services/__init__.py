# services/__init__.py
"""Authorization, storage, mutation and client-sync services for crewboard."""
