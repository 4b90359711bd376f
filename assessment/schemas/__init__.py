"""
Pydantic schemas for value objects and API request/response validation.
"""
