"""Manifest stages, filters and transformers for Knative Serving and Eventing resources."""

__version__ = "0.1.0"

__all__ = ["eventing", "ingress", "serving", "stages", "unstructured"]