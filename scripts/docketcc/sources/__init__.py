"""
Filing sources.

Each source implements the FilingSource interface and returns normalized
Filing objects for a docket.
"""
