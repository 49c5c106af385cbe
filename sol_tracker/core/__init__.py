"""
Core utilities: shared exceptions.
"""
