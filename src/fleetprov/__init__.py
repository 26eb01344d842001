"""Fleet provisioning backend: enrollment tokens, device certificates and registry."""

__version__ = "1.0.0"
