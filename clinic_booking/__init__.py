"""
Clinic Booking Service

A FastAPI service for booking clinic appointments: per-doctor slot
allocation, appointment cancellation and completion, and online payment
verification.
"""

__version__ = "1.0.0"
