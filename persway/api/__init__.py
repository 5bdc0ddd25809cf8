"""
HTTP blueprints for Persway.
"""
