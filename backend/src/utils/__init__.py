"""
Utility modules for the clinic admin backend.

This package contains shared helpers used across the application: datetime
handling, fixed-point money arithmetic, patient identity derivation and
normalization of the clinical payload.
"""
