"""Request-facing services: staging, batching, cleanup and HTTP views."""
