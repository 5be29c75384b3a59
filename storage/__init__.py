"""storage/ -- Ownership-scoped folder and file storage for FolderVault.

Layer rule: storage/ imports stdlib, third-party libraries and core/ only.
It never sees sessions or tokens -- callers pass an already-authenticated
owner id into every operation.
"""
