"""Multi-repository workspace engine.

- **workspaces**: workspace lifecycle (create, list, resolve, delete)
- **cache**: shared bare-mirror cache with per-repository locking
- **provisioner**: working clones from the cache, batch import
- **status**: concurrent status aggregation
- **apply**: run a command or script across every clone
- **pool**: the bounded fan-out all batch operations share
"""
