"""auth/ -- Authentication and authorization package for Express Connect.

Layer rule: auth/ imports only stdlib, third-party libraries, core/ and
notify.base. It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
