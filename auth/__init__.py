"""auth/ -- Credential and session lifecycle package for the job portal.

Layer rule: auth/ imports only core/, stdlib, and third-party libraries.
It does NOT import from api/, profiles/, or notify/. Collaborators it needs
(profile stubs, reset-link delivery) are injected by api/main.py.
"""
