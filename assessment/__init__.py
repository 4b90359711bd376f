"""
Assessment engine: test assembly, timed sessions and scoring.
"""
