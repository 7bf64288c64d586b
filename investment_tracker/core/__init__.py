"""
Core domain: value objects, enumerations, rounding and repository interfaces.
"""
