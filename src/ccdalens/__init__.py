"""ccdalens — Classify and extract structured data from C-CDA documents.

Supports the C-CDA 1.1, 2.0 and 2.1 document families (CCD, care plan,
H&P, operative, procedure, discharge, imaging, consultation, progress,
referral and transfer documents).
"""

__version__ = "0.3.0"
