"""
REST API.
"""
