"""
Routing package.

Maps request paths to (track, document) pairs and renders published
documents as HTTP responses.
"""
