"""
Core application modules.
Configuration, errors, logging, metrics, tracing and storage access.
"""
from .config import Settings, get_settings
from .database import PharmacyStore, get_pharmacy_store, get_supabase_client

__all__ = ["Settings", "get_settings", "PharmacyStore", "get_pharmacy_store", "get_supabase_client"]
