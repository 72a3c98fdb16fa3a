"""Tesseract + ZBar recognition service with job orchestration and result delivery."""

__version__ = "0.1.0"
