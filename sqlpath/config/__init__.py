"""
sqlpath/config
Environment-driven configuration.
"""
