"""
Test fixtures and factories.
"""
