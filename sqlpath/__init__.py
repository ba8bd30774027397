"""
sqlpath
Interactive SQL-learning platform backend: courses, learning paths,
AI-generated challenges, progress reconciliation and plan-based access.
"""
__version__ = "1.0.0"
