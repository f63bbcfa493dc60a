"""notify/ -- Outbound notifications (password reset links).

Layer rule: notify/ imports only core/ and third-party libraries.
It does NOT import from api/, auth/, or profiles/.
"""
