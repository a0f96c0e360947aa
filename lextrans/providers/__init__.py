"""Concrete adapters for the interfaces in :mod:`lextrans.interfaces`."""
