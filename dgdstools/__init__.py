"""Tools for Dynamix DGDS volume archives and their TTM/ADS cutscene scripts."""

__version__ = "0.1.0"
