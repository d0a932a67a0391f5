"""auth/ -- Users, credentials and authentication for Pocketbook.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or ledger/.
api/ and ledger/ import from auth/, not the other way around.
"""
