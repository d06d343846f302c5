"""
PCOS Portal - Clinical research data-entry portal
Participant enrollment, hormonal/metabolic lab forms, file intake and data export
"""
__version__ = "1.0.0"
