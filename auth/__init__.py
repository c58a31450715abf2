"""auth/ -- Credential lifecycle engine for Passgate.

Layer rule: auth/ imports only stdlib, third-party libraries, core/,
messaging/ and media/. It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
