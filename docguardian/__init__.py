"""DocGuardian mortgage document intelligence.

Classifies OCR text from uploaded mortgage paperwork, extracts structured
fields, flags inconsistencies, drives the application stage machine and
evaluates regulatory compliance rules.
"""
