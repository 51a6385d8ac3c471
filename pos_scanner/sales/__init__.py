"""
==============================================================================
Sales Package
==============================================================================

Sale draft assembled from scanned barcodes.

==============================================================================
"""

from .draft import SaleDraft, SaleLine

__all__ = ["SaleDraft", "SaleLine"]
