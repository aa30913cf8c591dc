"""
Noteforge - Knowledge-base export to web pages

Turns Roam and Logseq graph exports into rendered pages under the control
of a per-page Python script.
"""

__version__ = "0.1.0"
__author__ = "Noteforge Team"
