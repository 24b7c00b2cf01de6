"""Core delivery pipeline for smsrelay."""
