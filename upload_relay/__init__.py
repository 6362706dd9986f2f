"""
Upload Relay Service

A serverless endpoint that relays credit card statement and transaction uploads
to workflow webhooks, optionally extracting their fields with the OpenAI Vision API.
"""

__version__ = "0.1.0"
