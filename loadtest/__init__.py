"""
Fleet load harness package.

Modules:
- state: load parameters, status snapshots and per-node results
- engine: node-side CPU/memory stress lifecycle
- reporter: node resource snapshot
- registry: host-side set of node URLs
- discovery: DNS fan-out from one name to many node URLs
- client, fanout: host-to-node broadcast and status aggregation
- host_api, node_api: REST surfaces for the two roles
"""
