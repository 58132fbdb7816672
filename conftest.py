"""
Pytest bootstrap.
Switches the app to its in-memory SQLite configuration before any
application module is imported.
"""
import os

# Set testing environment before importing app
os.environ["TESTING"] = "True"
os.environ["DEBUG"] = "False"
os.environ["SUBSCRIPTION_EVENTS_ASYNC"] = "False"
os.environ["RATE_LIMIT_ENABLED"] = "False"
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
