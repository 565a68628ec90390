"""
Shortsmith - Vertical Shorts Export with Burned-In Captions

Turns a time range of a landscape video into a 1080x1920 short: zoom/pan
framing that matches the editor preview, styled captions burned into the
frame, and a caption-free fallback when burn-in is not possible.
"""

__version__ = "0.1.0"
__author__ = "Shortsmith Contributors"
__license__ = "MIT"
