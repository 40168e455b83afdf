"""auth/ -- Authentication and user-directory package for Paylink.

Layer rule: auth/ imports only core/ + stdlib + third-party libraries.
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
