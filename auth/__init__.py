"""auth/ -- Credential store, token service and role gates for campusdesk.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or academy/.
api/ and academy/ import from auth/, not the other way around.
"""
