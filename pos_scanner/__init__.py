"""
POS Barcode Capture

Camera barcode capture sessions feeding a point-of-sale sale draft.
"""

__version__ = "1.0.0"
