"""gRPC transport layer for the Login backend.

This package hosts:
- The wire contract (`protos/` and its Python bindings in `contracts/`).
- The reusable server scaffold: `builder` (configuration) and `server` (lifecycle).
- Interceptors: recovery, request id, access logging, and the client-side timeout/tracing pair.
- Service adapters (`services/`).
"""
