"""
Refresh package.

Contains the change detector and the per-track refresh loop that keep the
snapshot store current.
"""
