"""
CD Ripper - automated audio CD ripping service
"""

__version__ = "0.1.0"
