from fleetplan.remote.client import FleetClient, HTTPStatusError, RemoteError, fetch_snapshot

__all__ = ["FleetClient", "HTTPStatusError", "RemoteError", "fetch_snapshot"]
