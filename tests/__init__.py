"""
Test suite for the Clinic Booking Service.

Contains unit tests for the slot ledger, booking, lifecycle and payment
services, and integration tests for the HTTP API.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"
os.environ["TEST_DATABASE_URL"] = "sqlite:///./test.db"
os.environ["LOCK_BACKEND"] = "local"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
