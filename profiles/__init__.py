"""profiles/ -- Employer and seeker profile stubs.

Only the stub lifecycle lives here: one empty row per account, created at
registration and removed by ON DELETE CASCADE when the account is erased.
Profile editing belongs to the CRUD routes, not to this package.

Layer rule: profiles/ imports core/ and the auth.store table definition
(for the foreign key). It does NOT import from api/ or notify/.
"""
