"""auth/ -- Authentication, session lifecycle, and token rotation for taskauth.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/ or categories/ at module level.
api/ imports from auth/, not the other way around.
"""
