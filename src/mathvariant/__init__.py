"""
Math Problem Variation Pipeline
===============================

Turns one math problem (typed or photographed) and its solution into a set
of numerically varied practice problems.

Main components:
- Image normalization (rescale, Otsu binarization, sharpening)
- Multi-profile Tesseract OCR with early exit
- Math-text canonicalization
- Best-result selection
- Number variation via Gemini with a local fallback
- Text, Markdown and DOCX export
"""

__version__ = "1.0.0"
__author__ = "Math Variation Team"
