"""Credential acquisition: fetch, probe, resolve, gate."""
__all__ = ["fetcher", "prober", "resolver", "gate"]
