"""
Vehicle Cache Service package.

Polls a small fixed set of JSON documents (shapes, alerts, vehicles) from
an S3-compatible bucket for a primary and a preview track, and serves the
latest published bytes over HTTP with a SHA-256 ETag.
"""
