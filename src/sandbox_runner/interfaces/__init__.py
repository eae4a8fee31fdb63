"""
Sandbox Runner Interfaces Layer

HTTP surface over the application services.
"""
