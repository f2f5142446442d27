"""auth/ -- Identity and access-control core for the Samaj backend.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/, core/, or realtime/.
api/ and realtime/ import from auth/, not the other way around.
"""
