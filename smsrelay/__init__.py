"""smsrelay - forward incoming SMS to a signed webhook."""
__version__ = "0.1.0"
