"""
SolarScope - rooftop solar viability analysis.

Fuses building footprints and irradiation imagery into a single
Apto / Parcial / Não apto verdict with a suggested system size.
"""

__version__ = "1.0.0"
