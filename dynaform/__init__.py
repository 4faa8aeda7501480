"""
Configuration-driven dynamic forms.

One declarative field list drives both the rendered controls and the derived
validator.
"""

__version__ = "0.1.0"
