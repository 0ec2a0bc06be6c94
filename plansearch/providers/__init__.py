"""Concrete adapters for the interfaces in :mod:`plansearch.interfaces`."""
