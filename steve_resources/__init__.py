"""Resource schemas, stores and formatters for a Kubernetes-style API server."""

__version__ = "0.1.0"