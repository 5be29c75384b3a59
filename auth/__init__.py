"""auth/ -- Authentication and session package for FolderVault.

Layer rule: auth/ imports stdlib, third-party libraries and core/ only.
It does NOT import from api/ or storage/.
api/ imports from auth/, not the other way around.
"""
