"""
Storage package for the Vehicle Cache Service.

Wraps the remote object store client and the local materialized copies
that the change detector compares against. Only refresh loops touch this
package; the HTTP path never does.
"""
