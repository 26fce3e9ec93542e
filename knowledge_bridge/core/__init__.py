"""
Configuration and identity resolution.
"""
