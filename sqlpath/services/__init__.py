"""
sqlpath/services
Business logic layer. Route handlers stay thin and call into these modules.
"""
