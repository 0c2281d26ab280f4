"""
GeoIP enrichment worker: attaches city/country/ASN context to network events
"""

__version__ = "0.1.0"
