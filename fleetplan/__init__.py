"""fleet-plan — a read-only plan step for Fleet GitOps repositories.

Loads a fleet-gitops declaration tree, compares it against the current
state of a Fleet server and reports what an apply would add, modify or
delete. Nothing in this package ever writes to the server.
"""

__version__ = "0.4.0"
