"""
mastery-engine: adaptive mastery tracking, diagnostic placement and FIRe review scheduling.
"""

__version__ = "0.1.0"
