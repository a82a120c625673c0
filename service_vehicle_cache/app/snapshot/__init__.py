"""
Snapshot package.

Holds the in-memory map of currently published document bytes shared by
the refresh loops (writers) and request handlers (readers).
"""
