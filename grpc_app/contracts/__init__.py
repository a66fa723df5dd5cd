"""Wire contracts (protobuf messages and gRPC bindings) served by the backend."""
