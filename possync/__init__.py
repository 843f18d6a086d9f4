"""
PosSync - Toast POS order synchronization for the CRM
"""
__version__ = "1.0.0"
