"""
sqlpath/schemas
Pydantic request/response models and the challenge payload union.
"""
