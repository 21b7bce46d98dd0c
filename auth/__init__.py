"""auth/ -- Accounts, password hashing and token issuance for tokenauth.

Layer rule: auth/ imports only stdlib, third-party libraries, core/ and the
token cache in cache/. It does NOT import from api/ or client/.
api/ and client/ import from auth/, not the other way around.
"""
