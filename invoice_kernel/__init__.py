"""
Invoice Kernel - GST invoice generation core

Converts commerce orders into tax-compliant GST invoices:
- Intrastate / interstate tax determination with exact component splits
- Race-free per-shop invoice numbering
- Shop-scoped artifact storage with traversal-safe retrieval
- Typed errors and structured JSON logging shared by every package
"""

__version__ = "0.1.0"
