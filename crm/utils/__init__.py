"""
Utility package for the CRM engine (configuration, store, clock, errors).
"""
