"""
Cross-origin access policies for browser clients of the API.

CORS here is a relaxation of the same-origin rule for the operator UI,
not a security boundary.
"""
