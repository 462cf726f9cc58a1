"""
sunmoon_tide

Harmonic tide prediction for Thai coastal waters and the packaging,
verification and caching of tidal constituent tiles.
"""

__version__ = '1.0.0'
