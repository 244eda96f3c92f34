"""
Imaging Triage Backend

Local data API emulation and AI image analysis for the medical imaging
triage application.
"""

__version__ = "1.0.0"
