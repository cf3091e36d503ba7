"""auth/ -- Identity and access package for the Satsang API.

Layer rule: auth/ imports only stdlib + third-party libraries (and core/ for
settings in oauth.py). It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
